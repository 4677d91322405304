from typing import Dict, List, Optional, Tuple

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from .aggregates import summarize_ratings
from .auth import admin_required, current_identity, require_self_or_admin
from .errors import (
    OperationError,
    bad_request,
    commit_or_error,
    error_response,
    internal,
    not_found,
)
from .models import MAX_STARS, MIN_STARS, Poster, User, UserRating, db
from .security import Identity
from .serializers import serialize_rating
from .utils import get_json_payload, is_blank, parse_int

ratings_bp = Blueprint("ratings", __name__, url_prefix="/api/ratings")

RATE_POSTER_FAILED = "Could not save the rating."


# --- Helpers ---


def find_rating(user_id: int, poster_id: int) -> Optional[UserRating]:
    return UserRating.query.filter_by(user_id=user_id, poster_id=poster_id).first()


def fetch_rating(rating_id: int) -> Tuple[Optional[UserRating], Optional[OperationError]]:
    rating = (
        UserRating.query.options(selectinload(UserRating.user), selectinload(UserRating.poster))
        .filter(UserRating.id == rating_id)
        .first()
    )
    if not rating:
        return None, not_found("Rating not found.")
    return rating, None


def ratings_for_poster(poster_id: int) -> List[UserRating]:
    return (
        UserRating.query.options(selectinload(UserRating.user))
        .filter_by(poster_id=poster_id)
        .order_by(UserRating.id)
        .all()
    )


def ratings_for_user(user_id: int) -> List[UserRating]:
    return (
        UserRating.query.options(selectinload(UserRating.poster))
        .filter_by(user_id=user_id)
        .order_by(UserRating.id)
        .all()
    )


def average_rating(poster_id: int) -> Dict:
    stars = [
        rating.num_stars for rating in UserRating.query.filter_by(poster_id=poster_id)
    ]
    average, total = summarize_ratings(stars)
    return {"posterId": poster_id, "averageRating": average, "totalRatings": total}


def replace_stars(
    rating: UserRating, num_stars: int
) -> Tuple[Optional[UserRating], Optional[OperationError]]:
    rating.num_stars = num_stars
    commit_error = commit_or_error("Could not update the rating.")
    if commit_error:
        return None, commit_error
    return rating, None


def rate_poster(
    identity: Identity, payload: Dict
) -> Tuple[Optional[UserRating], bool, Optional[OperationError]]:
    """Create a rating, or overwrite the stars of the caller's existing one.

    Returns ``(rating, created, error)``.
    """
    if is_blank(payload.get("posterId")) or is_blank(payload.get("numStars")):
        return None, False, bad_request("posterId and numStars are required.")

    raw_user_id = payload.get("userId")
    user_id = identity.id if is_blank(raw_user_id) else parse_int(raw_user_id, minimum=1)
    poster_id = parse_int(payload.get("posterId"), minimum=1)
    num_stars = parse_int(payload.get("numStars"), minimum=MIN_STARS, maximum=MAX_STARS)

    if user_id is None or poster_id is None:
        return None, False, bad_request("userId and posterId must be valid ids.")
    if num_stars is None:
        return None, False, bad_request(
            f"Ratings must be a whole number between {MIN_STARS} and {MAX_STARS}."
        )

    permission_error = require_self_or_admin(identity, user_id)
    if permission_error:
        return None, False, permission_error

    if db.session.get(User, user_id) is None:
        return None, False, not_found("User not found.")
    if db.session.get(Poster, poster_id) is None:
        return None, False, not_found("Poster not found.")

    existing = find_rating(user_id, poster_id)
    if existing:
        rating, update_error = replace_stars(existing, num_stars)
        return rating, False, update_error

    rating = UserRating(user_id=user_id, poster_id=poster_id, num_stars=num_stars)
    db.session.add(rating)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning(
            "Rating for user %s and poster %s was created concurrently; overwriting",
            user_id,
            poster_id,
        )
        existing = find_rating(user_id, poster_id)
        if not existing:
            return None, False, internal(RATE_POSTER_FAILED)
        rating, update_error = replace_stars(existing, num_stars)
        return rating, False, update_error
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(RATE_POSTER_FAILED)
        return None, False, internal(RATE_POSTER_FAILED)

    return rating, True, None


def delete_rating(rating_id: int) -> Tuple[Optional[UserRating], Optional[OperationError]]:
    rating, load_error = fetch_rating(rating_id)
    if load_error:
        return None, load_error

    db.session.delete(rating)
    commit_error = commit_or_error("Could not delete the rating.")
    if commit_error:
        return None, commit_error
    return rating, None


# --- ROUTES ---


@ratings_bp.route("", methods=["GET"])
def list_ratings():
    ratings = (
        UserRating.query.options(selectinload(UserRating.user), selectinload(UserRating.poster))
        .order_by(UserRating.id)
        .all()
    )
    return jsonify(
        {
            "ratings": [
                serialize_rating(rating, include_user=True, include_poster=True)
                for rating in ratings
            ]
        }
    )


@ratings_bp.route("/<int:rating_id>", methods=["GET"])
def get_rating(rating_id: int):
    rating, error = fetch_rating(rating_id)
    if error:
        return error_response(error)
    return jsonify(
        {"rating": serialize_rating(rating, include_user=True, include_poster=True)}
    )


@ratings_bp.route("/poster/<int:poster_id>", methods=["GET"])
def list_poster_ratings(poster_id: int):
    ratings = ratings_for_poster(poster_id)
    return jsonify(
        {"ratings": [serialize_rating(rating, include_user=True) for rating in ratings]}
    )


@ratings_bp.route("/poster/<int:poster_id>/average", methods=["GET"])
def get_average_rating(poster_id: int):
    return jsonify(average_rating(poster_id))


@ratings_bp.route("/user/<int:user_id>", methods=["GET"])
@jwt_required()
def list_user_ratings(user_id: int):
    ratings = ratings_for_user(user_id)
    return jsonify(
        {"ratings": [serialize_rating(rating, include_poster=True) for rating in ratings]}
    )


@ratings_bp.route("", methods=["POST"])
@jwt_required()
def rate_poster_route():
    rating, created, error = rate_poster(current_identity(), get_json_payload())
    if error:
        return error_response(error)

    message = "Rating created." if created else "Rating updated."
    return (
        jsonify({"message": message, "rating": serialize_rating(rating)}),
        201 if created else 200,
    )


@ratings_bp.route("/<int:rating_id>", methods=["DELETE"])
@admin_required
def delete_rating_route(rating_id: int):
    _, error = delete_rating(rating_id)
    if error:
        return error_response(error)
    return jsonify({"message": "Rating deleted.", "rating": {"id": rating_id}})
