from functools import wraps
from typing import Optional, Tuple

from flask import current_app
from flask_jwt_extended import JWTManager, get_jwt, jwt_required

from .errors import OperationError, error_response, forbidden, unauthorized
from .models import ROLE_ADMIN
from .security import Identity, identity_from_claims


def register_token_callbacks(jwt: JWTManager) -> None:
    @jwt.unauthorized_loader
    def handle_missing_token(reason: str):
        current_app.logger.warning("Rejected request without a bearer token: %s", reason)
        return error_response(unauthorized("No token provided."))

    @jwt.invalid_token_loader
    def handle_invalid_token(reason: str):
        current_app.logger.warning("Rejected invalid bearer token: %s", reason)
        return error_response(unauthorized("Invalid token."))

    @jwt.expired_token_loader
    def handle_expired_token(jwt_header, jwt_payload):
        return error_response(unauthorized("Token has expired."))


def current_identity() -> Identity:
    return identity_from_claims(get_jwt())


def require_admin() -> Tuple[Optional[Identity], Optional[OperationError]]:
    identity = current_identity()
    if identity.role == ROLE_ADMIN:
        return identity, None
    return None, forbidden("You need additional permissions to perform this action.")


def require_self_or_admin(identity: Identity, user_id: int) -> Optional[OperationError]:
    if identity.is_admin or identity.id == user_id:
        return None
    return forbidden("You can only manage your own cart and ratings.")


def admin_required(view):
    """Allow the view only for requests carrying a valid ADMIN token."""

    @wraps(view)
    @jwt_required()
    def wrapper(*args, **kwargs):
        _, admin_error = require_admin()
        if admin_error:
            return error_response(admin_error)
        return view(*args, **kwargs)

    return wrapper
