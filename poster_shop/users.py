from typing import Dict, Optional, Tuple

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required

from .auth import admin_required, current_identity
from .errors import (
    OperationError,
    bad_request,
    commit_or_error,
    error_response,
    forbidden,
    not_found,
    unauthorized,
)
from .models import ALLOWED_ROLES, ROLE_ADMIN, ROLE_USER, User, db
from .security import MAX_PASSWORD_BYTES, Identity, hash_password, issue_token, verify_password
from .serializers import serialize_user
from .utils import get_json_payload, is_valid_email, normalize_email, normalize_text, parse_bool

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


# --- Helpers ---


def fetch_user(user_id: int) -> Tuple[Optional[User], Optional[OperationError]]:
    user = db.session.get(User, user_id)
    if not user:
        return None, not_found("User not found.")
    return user, None


def register_user(payload: Dict) -> Tuple[Optional[User], Optional[OperationError]]:
    firstname = normalize_text(payload.get("firstname"))
    lastname = normalize_text(payload.get("lastname"))
    email = normalize_email(payload.get("email"))
    password = str(payload.get("password") or "")

    if not firstname or not lastname or not email or not password:
        return None, bad_request(
            "Firstname, lastname, email and password are required."
        )

    if not is_valid_email(email):
        return None, bad_request("Please provide a valid email address.")

    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return None, bad_request(
            f"Passwords can be at most {MAX_PASSWORD_BYTES} bytes long."
        )

    if User.query.filter_by(email=email).first():
        return None, bad_request("An account with this email already exists.")

    admin_email = current_app.config.get("DEFAULT_ADMIN_EMAIL")
    assigned_role = ROLE_ADMIN if admin_email and email == admin_email else ROLE_USER

    user = User(
        firstname=firstname,
        lastname=lastname,
        email=email,
        password=hash_password(password),
        role=assigned_role,
        is_active=True,
    )
    db.session.add(user)
    commit_error = commit_or_error("Could not create the account.")
    if commit_error:
        return None, commit_error

    current_app.logger.info("Registered user %s with role %s", user.id, user.role)
    return user, None


def authenticate(payload: Dict) -> Tuple[Optional[User], Optional[OperationError]]:
    email = normalize_email(payload.get("email"))
    password = str(payload.get("password") or "")

    if not email or not password:
        return None, bad_request("Email and password are required.")

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password):
        current_app.logger.warning("Failed login attempt for %s", email)
        return None, unauthorized("Invalid credentials.")

    if not user.is_active:
        return None, forbidden("This account has been deactivated.")

    return user, None


def update_user(user_id: int, payload: Dict) -> Tuple[Optional[User], Optional[OperationError]]:
    updates: Dict[str, object] = {}

    for field in ("firstname", "lastname"):
        if field in payload:
            value = normalize_text(payload.get(field))
            if not value:
                return None, bad_request(f"{field.capitalize()} cannot be empty.")
            updates[field] = value

    if "isActive" in payload:
        is_active = parse_bool(payload.get("isActive"))
        if is_active is None:
            return None, bad_request("isActive must be true or false.")
        updates["is_active"] = is_active

    if "role" in payload:
        role = str(payload.get("role") or "").strip().upper()
        if role not in ALLOWED_ROLES:
            return None, bad_request("Role must be 'USER' or 'ADMIN'.")
        updates["role"] = role

    user, load_error = fetch_user(user_id)
    if load_error:
        return None, load_error

    for attribute, value in updates.items():
        setattr(user, attribute, value)

    commit_error = commit_or_error("Could not update the user.")
    if commit_error:
        return None, commit_error
    return user, None


def delete_user(identity: Identity, user_id: int) -> Tuple[Optional[User], Optional[OperationError]]:
    user, load_error = fetch_user(user_id)
    if load_error:
        return None, load_error

    if user.id == identity.id:
        return None, bad_request("You cannot delete your own account.")

    db.session.delete(user)
    commit_error = commit_or_error("Could not delete the user.")
    if commit_error:
        return None, commit_error

    current_app.logger.info("User %s deleted by %s", user_id, identity.id)
    return user, None


# --- ROUTES ---


@users_bp.route("/register", methods=["POST"])
def register():
    user, error = register_user(get_json_payload())
    if error:
        return error_response(error)

    token = issue_token(user.id, user.email, user.role)
    return (
        jsonify(
            {"message": "Account created.", "user": serialize_user(user), "token": token}
        ),
        201,
    )


@users_bp.route("/login", methods=["POST"])
def login():
    user, error = authenticate(get_json_payload())
    if error:
        return error_response(error)

    token = issue_token(user.id, user.email, user.role)
    return jsonify(
        {"message": "Logged in successfully.", "user": serialize_user(user), "token": token}
    )


@users_bp.route("/profile", methods=["GET"])
@jwt_required()
def profile():
    user, error = fetch_user(current_identity().id)
    if error:
        return error_response(error)
    return jsonify({"user": serialize_user(user)})


@users_bp.route("", methods=["GET"])
@admin_required
def list_users():
    users = User.query.order_by(User.id).all()
    return jsonify({"users": [serialize_user(user) for user in users]})


@users_bp.route("/<int:user_id>", methods=["GET"])
@admin_required
def get_user(user_id: int):
    user, error = fetch_user(user_id)
    if error:
        return error_response(error)
    return jsonify({"user": serialize_user(user)})


@users_bp.route("/<int:user_id>", methods=["PUT"])
@admin_required
def update_user_route(user_id: int):
    user, error = update_user(user_id, get_json_payload())
    if error:
        return error_response(error)
    return jsonify({"message": "User updated.", "user": serialize_user(user)})


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@admin_required
def delete_user_route(user_id: int):
    _, error = delete_user(current_identity(), user_id)
    if error:
        return error_response(error)
    return jsonify({"message": "User deleted.", "user": {"id": user_id}})
