from flask import Flask


def register_blueprints(app: Flask) -> None:
    from conference_abstracts.routes.v1 import api_bp

    app.register_blueprint(api_bp, url_prefix="/api")
