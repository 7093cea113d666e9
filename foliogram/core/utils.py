from functools import wraps

from flask import current_app
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_login import current_user

from .. import db
from ..models.db_models import User
from ..services.identity import Identity


def get_services():
    return current_app.extensions["foliogram"]


def current_identity():
    """Identity of the caller from the JWT, else from the login session."""
    verify_jwt_in_request(optional=True)
    user_id = get_jwt_identity()
    if user_id is not None:
        user = db.session.get(User, int(user_id))
        return Identity.from_user(user) if user else None
    if current_user and current_user.is_authenticated:
        return Identity.from_user(current_user)
    return None


def success(data=None, code=200, message=None):
    body = {"status": "success", "data": data}
    if message:
        body["message"] = message
    return body, code


def error(message, code=400):
    return {"status": "error", "message": message}, code


def identity_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = current_identity()
        if identity is None:
            return error("Authentication required", 401)
        return f(*args, identity=identity, **kwargs)

    return decorated_function
