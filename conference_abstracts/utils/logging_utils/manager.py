from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from flask import Flask, current_app


_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "log_context"}

_FILENAMES = {
    "app": "application.log",
    "error": "errors.log",
}


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def update_log_context(**fields: Any) -> None:
    """Merge fields into the active context; ``None`` removes a key."""

    current = dict(_log_context.get())
    for key, value in fields.items():
        if value is None:
            current.pop(key, None)
        else:
            current[key] = value
    _log_context.set(current)


def clear_log_context() -> None:
    _log_context.set({})


@contextmanager
def log_context(**fields: Any):
    """Temporarily add contextual fields (abstract_id, actor_id, ...) to every record."""

    merged = dict(_log_context.get())
    merged.update({k: v for k, v in fields.items() if v is not None})
    token = _log_context.set(merged)
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextFilter(logging.Filter):
    """Snapshot the active log context onto the record at emit time."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.log_context = dict(_log_context.get())
        return True


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("[%(asctime)s] %(levelname)s %(name)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "log_context", None)
        if context:
            line += " | " + " ".join(f"{k}={v}" for k, v in sorted(context.items()))
        return line


class JsonFormatter(logging.Formatter):
    def __init__(self, static_fields: Optional[Dict[str, Any]] = None) -> None:
        super().__init__()
        self.static_fields = {k: v for k, v in (static_fields or {}).items() if v is not None}

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = dict(self.static_fields)
        payload.update(
            timestamp=self.formatTime(record),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
        )
        payload.update({k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and not k.startswith("_")})
        context = getattr(record, "log_context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


def _as_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)


def _as_dict(value: Any) -> Dict[str, Any]:
    # Environment values arrive as JSON text, app config values as dicts.
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return dict(value) if isinstance(value, Mapping) else {}


def _as_level(value: Any, default: int = logging.INFO) -> int:
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value or "").strip().upper())
    return level if isinstance(level, int) else default


@dataclass
class LoggingSettings:
    """``LOGGING_*`` options, read from app config or the environment."""

    base_dir: Path = Path("/tmp/conference_abstracts_logs")
    level: int = logging.INFO
    category_levels: Dict[str, int] = field(default_factory=dict)
    category_files: Dict[str, str] = field(default_factory=dict)
    write_files: bool = True
    rotation_when: str = "midnight"
    backup_count: int = 7
    console: bool = True
    json_format: bool = False
    mirror_app_handlers: bool = True
    static_fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, source: Mapping[str, Any]) -> "LoggingSettings":
        return cls(
            base_dir=Path(source.get("LOGGING_BASE_DIR") or cls.base_dir),
            level=_as_level(source.get("LOGGING_DEFAULT_LEVEL") or source.get("LOG_LEVEL")),
            category_levels={str(k).lower(): _as_level(v) for k, v in _as_dict(source.get("LOGGING_CATEGORY_LEVELS")).items()},
            category_files={str(k).lower(): str(v) for k, v in _as_dict(source.get("LOGGING_CATEGORY_FILES")).items()},
            write_files=_as_bool(source.get("LOGGING_ENABLE_CATEGORY_FILES"), True),
            rotation_when=source.get("LOGGING_ROTATION_WHEN") or "midnight",
            backup_count=int(source.get("LOGGING_ROTATION_BACKUP_COUNT") or 7),
            console=_as_bool(source.get("LOGGING_CONSOLE_ENABLED"), True),
            json_format=_as_bool(source.get("LOGGING_JSON_FORMAT"), False),
            mirror_app_handlers=_as_bool(source.get("LOGGING_MIRROR_APP_HANDLERS"), True),
            static_fields={"app": source.get("APP_NAME"), **_as_dict(source.get("LOGGING_STATIC_FIELDS"))},
        )

    def filename_for(self, category: str) -> str:
        return self.category_files.get(category) or _FILENAMES.get(category) or f"{category}.log"

    def level_for(self, category: str) -> int:
        return self.category_levels.get(category, self.level)


class LoggerManager:
    """
    One ``conference_abstracts.<category>`` logger per category, each with its
    own daily-rotated file, plus an optional shared console handler and the
    Flask app's handlers mirrored in.

    Loggers are process-wide objects that modules grab at import time, so
    reconfiguring swaps their handlers in place instead of creating new ones.
    """

    def __init__(self, settings: LoggingSettings) -> None:
        self.settings = settings
        self._categories: List[str] = []
        self._owned: Dict[str, List[logging.Handler]] = {}
        self._console: Optional[logging.Handler] = None
        self._filter = ContextFilter()

    def _formatter(self) -> logging.Formatter:
        if self.settings.json_format:
            return JsonFormatter(self.settings.static_fields)
        return TextFormatter()

    def get_logger(self, category: str, app: Optional[Flask] = None) -> logging.Logger:
        key = category.strip().lower()
        logger = logging.getLogger(f"conference_abstracts.{key}")
        if key not in self._owned:
            self._configure(key, logger, app if app is not None else _current_app())
            self._categories.append(key)
        return logger

    def _configure(self, key: str, logger: logging.Logger, app: Optional[Flask]) -> None:
        settings = self.settings
        level = settings.level_for(key)
        logger.propagate = False
        logger.setLevel(level)

        owned: List[logging.Handler] = []
        if settings.write_files:
            settings.base_dir.mkdir(parents=True, exist_ok=True)
            handler = TimedRotatingFileHandler(
                settings.base_dir / settings.filename_for(key),
                when=settings.rotation_when,
                backupCount=settings.backup_count,
                encoding="utf-8",
                utc=True,
                delay=True,
            )
            handler.setLevel(level)
            handler.setFormatter(self._formatter())
            owned.append(handler)
        if settings.console:
            owned.append(self._console_handler())

        for handler in owned:
            handler.addFilter(self._filter)
            if handler not in logger.handlers:
                logger.addHandler(handler)
        if settings.mirror_app_handlers and app is not None:
            for handler in app.logger.handlers:
                if handler not in logger.handlers:
                    logger.addHandler(handler)
        self._owned[key] = owned

    def _console_handler(self) -> logging.Handler:
        if self._console is None:
            self._console = logging.StreamHandler()
            self._console.setFormatter(self._formatter())
        return self._console

    def reconfigure(self, settings: LoggingSettings, app: Optional[Flask] = None) -> None:
        categories = list(self._categories)
        self.shutdown()
        self.settings = settings
        for key in categories:
            self.get_logger(key, app)

    def shutdown(self) -> None:
        for key in self._categories:
            logger = logging.getLogger(f"conference_abstracts.{key}")
            # Mirrored app handlers belong to Flask; detach them without closing.
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
            for handler in self._owned.get(key, []):
                if handler is not self._console:
                    handler.close()
        if self._console is not None:
            self._console.close()
            self._console = None
        self._categories = []
        self._owned = {}


def _current_app() -> Optional[Flask]:
    try:
        return current_app._get_current_object()  # type: ignore[attr-defined]
    except RuntimeError:
        return None


_manager: Optional[LoggerManager] = None


def logger_manager() -> LoggerManager:
    global _manager
    if _manager is None:
        _manager = LoggerManager(LoggingSettings.from_mapping(os.environ))
    return _manager


def init_logger(app: Flask) -> LoggerManager:
    """Apply the app's ``LOGGING_*`` config to every category logger."""

    logger_manager().reconfigure(LoggingSettings.from_mapping(app.config), app)
    return logger_manager()


def shutdown_logger() -> None:
    global _manager
    if _manager is not None:
        _manager.shutdown()
        _manager = None


def get_logger(category: str) -> logging.Logger:
    return logger_manager().get_logger(category)
