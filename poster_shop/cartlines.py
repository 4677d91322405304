from typing import Dict, List, Optional, Tuple

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from .auth import admin_required, current_identity, require_self_or_admin
from .errors import (
    OperationError,
    bad_request,
    commit_or_error,
    error_response,
    internal,
    not_found,
)
from .models import Cartline, Poster, User, db
from .security import Identity
from .serializers import serialize_cartline
from .utils import get_json_payload, is_blank, parse_int

cartlines_bp = Blueprint("cartlines", __name__, url_prefix="/api/cartlines")

ADD_TO_CART_FAILED = "Could not add the poster to the cart."


# --- Helpers ---


def find_cartline(user_id: int, poster_id: int) -> Optional[Cartline]:
    return Cartline.query.filter_by(user_id=user_id, poster_id=poster_id).first()


def fetch_cartline(
    identity: Identity, cartline_id: int
) -> Tuple[Optional[Cartline], Optional[OperationError]]:
    cartline = (
        Cartline.query.options(selectinload(Cartline.poster), selectinload(Cartline.user))
        .filter(Cartline.id == cartline_id)
        .first()
    )
    if not cartline:
        return None, not_found("Cart line not found.")

    permission_error = require_self_or_admin(identity, cartline.user_id)
    if permission_error:
        return None, permission_error
    return cartline, None


def list_cartlines_for_user(user_id: int) -> List[Cartline]:
    return (
        Cartline.query.options(selectinload(Cartline.poster))
        .filter_by(user_id=user_id)
        .order_by(Cartline.id)
        .all()
    )


def merge_quantity(
    cartline: Cartline, quantity: int
) -> Tuple[Optional[Cartline], Optional[OperationError]]:
    # Increment in SQL so concurrent merges on the same line add up.
    cartline.quantity = Cartline.quantity + quantity
    commit_error = commit_or_error("Could not update the cart line.")
    if commit_error:
        return None, commit_error
    return cartline, None


def add_to_cart(
    identity: Identity, payload: Dict
) -> Tuple[Optional[Cartline], bool, Optional[OperationError]]:
    """Add a poster to a cart, merging into an existing line for the same poster.

    Returns ``(cartline, created, error)``; ``created`` is False when the
    quantity was added to a line that already existed.
    """
    if is_blank(payload.get("posterId")) or is_blank(payload.get("quantity")):
        return None, False, bad_request("posterId and quantity are required.")

    raw_user_id = payload.get("userId")
    user_id = identity.id if is_blank(raw_user_id) else parse_int(raw_user_id, minimum=1)
    poster_id = parse_int(payload.get("posterId"), minimum=1)
    quantity = parse_int(payload.get("quantity"), minimum=1)

    if user_id is None or poster_id is None:
        return None, False, bad_request("userId and posterId must be valid ids.")
    if quantity is None:
        return None, False, bad_request("Quantity must be a whole number greater than zero.")

    permission_error = require_self_or_admin(identity, user_id)
    if permission_error:
        return None, False, permission_error

    if db.session.get(User, user_id) is None:
        return None, False, not_found("User not found.")
    if db.session.get(Poster, poster_id) is None:
        return None, False, not_found("Poster not found.")

    existing = find_cartline(user_id, poster_id)
    if existing:
        cartline, merge_error = merge_quantity(existing, quantity)
        return cartline, False, merge_error

    cartline = Cartline(user_id=user_id, poster_id=poster_id, quantity=quantity)
    db.session.add(cartline)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning(
            "Cart line for user %s and poster %s was created concurrently; merging",
            user_id,
            poster_id,
        )
        existing = find_cartline(user_id, poster_id)
        if not existing:
            return None, False, internal(ADD_TO_CART_FAILED)
        cartline, merge_error = merge_quantity(existing, quantity)
        return cartline, False, merge_error
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(ADD_TO_CART_FAILED)
        return None, False, internal(ADD_TO_CART_FAILED)

    return cartline, True, None


def update_cartline(
    identity: Identity, cartline_id: int, payload: Dict
) -> Tuple[Optional[Cartline], Optional[OperationError]]:
    quantity = parse_int(payload.get("quantity"), minimum=1)
    if quantity is None:
        return None, bad_request("Quantity must be a whole number greater than zero.")

    cartline, load_error = fetch_cartline(identity, cartline_id)
    if load_error:
        return None, load_error

    cartline.quantity = quantity
    commit_error = commit_or_error("Could not update the cart line.")
    if commit_error:
        return None, commit_error
    return cartline, None


def delete_cartline(
    identity: Identity, cartline_id: int
) -> Tuple[Optional[Cartline], Optional[OperationError]]:
    cartline, load_error = fetch_cartline(identity, cartline_id)
    if load_error:
        return None, load_error

    db.session.delete(cartline)
    commit_error = commit_or_error("Could not remove the cart line.")
    if commit_error:
        return None, commit_error
    return cartline, None


def clear_cart(identity: Identity, user_id: int) -> Tuple[Optional[int], Optional[OperationError]]:
    permission_error = require_self_or_admin(identity, user_id)
    if permission_error:
        return None, permission_error

    removed = Cartline.query.filter_by(user_id=user_id).delete(synchronize_session=False)
    commit_error = commit_or_error("Could not clear the cart.")
    if commit_error:
        return None, commit_error
    return removed, None


# --- ROUTES ---


@cartlines_bp.route("", methods=["GET"])
@admin_required
def list_cartlines():
    cartlines = (
        Cartline.query.options(selectinload(Cartline.user), selectinload(Cartline.poster))
        .order_by(Cartline.id)
        .all()
    )
    return jsonify(
        {
            "cartlines": [
                serialize_cartline(cartline, include_user=True) for cartline in cartlines
            ]
        }
    )


@cartlines_bp.route("/user/<int:user_id>", methods=["GET"])
@jwt_required()
def list_user_cartlines(user_id: int):
    permission_error = require_self_or_admin(current_identity(), user_id)
    if permission_error:
        return error_response(permission_error)

    cartlines = list_cartlines_for_user(user_id)
    return jsonify({"cartlines": [serialize_cartline(cartline) for cartline in cartlines]})


@cartlines_bp.route("/<int:cartline_id>", methods=["GET"])
@jwt_required()
def get_cartline(cartline_id: int):
    cartline, error = fetch_cartline(current_identity(), cartline_id)
    if error:
        return error_response(error)
    return jsonify({"cartline": serialize_cartline(cartline, include_user=True)})


@cartlines_bp.route("", methods=["POST"])
@jwt_required()
def add_to_cart_route():
    cartline, created, error = add_to_cart(current_identity(), get_json_payload())
    if error:
        return error_response(error)

    message = "Added to cart." if created else "Cart line updated."
    return (
        jsonify({"message": message, "cartline": serialize_cartline(cartline)}),
        201 if created else 200,
    )


@cartlines_bp.route("/<int:cartline_id>", methods=["PUT"])
@jwt_required()
def update_cartline_route(cartline_id: int):
    cartline, error = update_cartline(current_identity(), cartline_id, get_json_payload())
    if error:
        return error_response(error)
    return jsonify({"message": "Cart line updated.", "cartline": serialize_cartline(cartline)})


@cartlines_bp.route("/<int:cartline_id>", methods=["DELETE"])
@jwt_required()
def delete_cartline_route(cartline_id: int):
    _, error = delete_cartline(current_identity(), cartline_id)
    if error:
        return error_response(error)
    return jsonify({"message": "Removed from cart.", "cartline": {"id": cartline_id}})


@cartlines_bp.route("/user/<int:user_id>/clear", methods=["DELETE"])
@jwt_required()
def clear_cart_route(user_id: int):
    removed, error = clear_cart(current_identity(), user_id)
    if error:
        return error_response(error)
    return jsonify({"message": "Cart cleared.", "removed": removed})
