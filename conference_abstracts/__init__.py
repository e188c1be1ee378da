import logging
import os
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask, request
from flask_compress import Compress
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from conference_abstracts.security_utils import log_structured
from conference_abstracts.utils.logging_utils import clear_log_context, get_logger, init_logger

from .commands.admin_commands import hash_admin_password
from .commands.notification_commands import notifications_cli
from .commands.setup_commands import setup_command

# .env must be loaded before the config classes read the environment
load_dotenv()

from .config import Config, config  # noqa: E402
from .errors import register_error_handlers  # noqa: E402
from .extensions import db, jwt, ma, migrate  # noqa: E402
from .models import *  # noqa: E402,F401,F403
from .routes import register_blueprints  # noqa: E402
from .security import init_jwt_callbacks  # noqa: E402
from .services.storage import init_storage  # noqa: E402

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'DENY',
    'Referrer-Policy': 'no-referrer',
    'Content-Security-Policy': "default-src 'none'; frame-ancestors 'none'",
}

LEVEL_OVERRIDE_PREFIX = 'APP_LOG_LEVEL_'


def configure_logging(app):
    """App log file, category loggers, then per-library level overrides."""
    level_name = app.config.get('LOG_LEVEL', 'INFO')
    level = logging.getLevelName(level_name)

    log_file = app.config.get('LOG_FILE', '/tmp/conference_abstracts_app.log')
    if os.path.dirname(log_file):
        os.makedirs(os.path.dirname(log_file), exist_ok=True)

    # app.logger is shared by every app built in this process
    if not any(isinstance(h, RotatingFileHandler) for h in app.logger.handlers):
        handler = RotatingFileHandler(
            log_file,
            maxBytes=app.config.get('LOG_MAX_BYTES', 10 * 1024 * 1024),
            backupCount=app.config.get('LOG_BACKUP_COUNT', 5),
            delay=True,
        )
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s in %(module)s: %(message)s"))
        handler.setLevel(level)
        app.logger.addHandler(handler)
    app.logger.setLevel(level)

    init_logger(app)

    # APP_LOG_LEVEL_SQLALCHEMY=WARNING, APP_LOG_LEVEL_BOTOCORE=ERROR, ...
    for key, value in os.environ.items():
        if not key.startswith(LEVEL_OVERRIDE_PREFIX):
            continue
        name = key[len(LEVEL_OVERRIDE_PREFIX):].strip().lower()
        override = logging.getLevelName((value or '').strip().upper())
        if name and isinstance(override, int):
            logging.getLogger(name).setLevel(override)

    app.logger.info("Logging configured with level: %s", level_name)


def _proxy_count():
    try:
        return max(int(os.environ.get('PROXY_FIX_NUM', '0')), 0)
    except ValueError:
        return 0


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    ma.init_app(app)
    jwt.init_app(app)
    init_jwt_callbacks(jwt)
    init_storage(app)


def _register_cli(app):
    for command in (setup_command, hash_admin_password, notifications_cli):
        app.cli.add_command(command)


def _install_request_hooks(app):
    @app.before_request
    def _log_request():
        clear_log_context()
        log_structured("request", method=request.method, path=request.path, ip=request.remote_addr, args=dict(request.args))

    @app.after_request
    def _log_response(resp):
        log_structured("response", method=request.method, path=request.path, status=resp.status_code)
        for header, value in SECURITY_HEADERS.items():
            resp.headers.setdefault(header, value)
        return resp

    @app.teardown_request
    def _reset_log_context(exc):
        clear_log_context()


def create_app(config_name=None):
    config_name = config_name or os.getenv('FLASK_ENV', 'default')
    config_class = config.get(config_name, Config)

    app = Flask(__name__)
    app.config.from_object(config_class)
    config_class.init_app(app)

    configure_logging(app)
    get_logger("app").info("Starting with config %s", config_class.__name__)

    proxies = _proxy_count()
    if proxies:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxies, x_proto=proxies, x_host=proxies, x_port=proxies, x_prefix=proxies)
        app.logger.info("ProxyFix enabled for %d proxies", proxies)

    _init_extensions(app)
    register_error_handlers(app)
    _register_cli(app)
    _install_request_hooks(app)

    Compress(app)
    CORS(app, origins=app.config.get('CORS_ORIGINS', '*'), supports_credentials=True)

    register_blueprints(app)
    app.logger.info("Application ready: %d routes", len(list(app.url_map.iter_rules())))
    return app
