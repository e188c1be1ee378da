from flask import Blueprint

api_bp = Blueprint('api_bp', __name__)

from conference_abstracts.routes.v1 import (  # noqa: E402,F401
    abstract_route,
    auth_route,
    upload_route,
)
