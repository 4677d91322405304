from typing import Dict, List, Optional, Tuple

from flask import Blueprint, current_app, jsonify
from sqlalchemy.orm import selectinload

from .auth import admin_required
from .errors import OperationError, bad_request, commit_or_error, error_response, not_found
from .models import Genre, GenrePosterRel, db
from .serializers import serialize_genre
from .utils import get_json_payload, is_blank, normalize_text, slugify

genres_bp = Blueprint("genres", __name__, url_prefix="/api/genres")


# --- Helpers ---


def _genre_query():
    return Genre.query.options(
        selectinload(Genre.poster_links).selectinload(GenrePosterRel.poster)
    )


def fetch_genre(genre_id: int) -> Tuple[Optional[Genre], Optional[OperationError]]:
    genre = _genre_query().filter(Genre.id == genre_id).first()
    if not genre:
        return None, not_found("Genre not found.")
    return genre, None


def fetch_genre_by_slug(slug: str) -> Tuple[Optional[Genre], Optional[OperationError]]:
    genre = _genre_query().filter(Genre.slug == slug).first()
    if not genre:
        return None, not_found("Genre not found.")
    return genre, None


def resolve_genres(raw_ids) -> Tuple[Optional[List[Genre]], Optional[OperationError]]:
    """Load the genres referenced by a ``genreIds`` payload value."""
    if raw_ids is None:
        return [], None
    if not isinstance(raw_ids, list):
        return None, bad_request("genreIds must be a list of genre ids.")

    genre_ids: List[int] = []
    for value in raw_ids:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            return None, bad_request("genreIds must be a list of genre ids.")
        try:
            genre_id = int(value)
        except ValueError:
            return None, bad_request("genreIds must be a list of genre ids.")
        if genre_id not in genre_ids:
            genre_ids.append(genre_id)

    if not genre_ids:
        return [], None

    found = {genre.id: genre for genre in Genre.query.filter(Genre.id.in_(genre_ids))}
    missing = [str(genre_id) for genre_id in genre_ids if genre_id not in found]
    if missing:
        return None, bad_request(f"Unknown genre ids: {', '.join(missing)}.")
    return [found[genre_id] for genre_id in genre_ids], None


def slug_in_use(slug: str, exclude_id: Optional[int] = None) -> bool:
    query = Genre.query.filter(Genre.slug == slug)
    if exclude_id is not None:
        query = query.filter(Genre.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def create_genre(payload: Dict) -> Tuple[Optional[Genre], Optional[OperationError]]:
    title = normalize_text(payload.get("title"))
    if not title:
        return None, bad_request("A genre title is required.")

    raw_slug = payload.get("slug")
    slug = slugify(title if is_blank(raw_slug) else raw_slug)
    if slug_in_use(slug):
        return None, bad_request("A genre with this slug already exists.")

    genre = Genre(title=title, slug=slug)
    db.session.add(genre)
    commit_error = commit_or_error("Could not create the genre.")
    if commit_error:
        return None, commit_error

    current_app.logger.info("Created genre %s (%s)", genre.id, genre.slug)
    return genre, None


def update_genre(genre_id: int, payload: Dict) -> Tuple[Optional[Genre], Optional[OperationError]]:
    updates: Dict[str, str] = {}
    if "title" in payload:
        title = normalize_text(payload.get("title"))
        if not title:
            return None, bad_request("A genre title cannot be empty.")
        updates["title"] = title
    if "slug" in payload:
        if is_blank(payload.get("slug")):
            return None, bad_request("A genre slug cannot be empty.")
        updates["slug"] = slugify(payload.get("slug"))

    genre, load_error = fetch_genre(genre_id)
    if load_error:
        return None, load_error

    if "slug" in updates and slug_in_use(updates["slug"], exclude_id=genre.id):
        return None, bad_request("A genre with this slug already exists.")

    for attribute, value in updates.items():
        setattr(genre, attribute, value)

    commit_error = commit_or_error("Could not update the genre.")
    if commit_error:
        return None, commit_error
    return genre, None


def delete_genre(genre_id: int) -> Tuple[Optional[Genre], Optional[OperationError]]:
    genre, load_error = fetch_genre(genre_id)
    if load_error:
        return None, load_error

    db.session.delete(genre)
    commit_error = commit_or_error("Could not delete the genre.")
    if commit_error:
        return None, commit_error

    current_app.logger.info("Deleted genre %s", genre_id)
    return genre, None


# --- ROUTES ---


@genres_bp.route("", methods=["GET"])
def list_genres():
    genres = _genre_query().order_by(Genre.title).all()
    return jsonify({"genres": [serialize_genre(genre) for genre in genres]})


@genres_bp.route("/<int:genre_id>", methods=["GET"])
def get_genre(genre_id: int):
    genre, error = fetch_genre(genre_id)
    if error:
        return error_response(error)
    return jsonify({"genre": serialize_genre(genre)})


@genres_bp.route("/slug/<slug>", methods=["GET"])
def get_genre_by_slug(slug: str):
    genre, error = fetch_genre_by_slug(slug)
    if error:
        return error_response(error)
    return jsonify({"genre": serialize_genre(genre)})


@genres_bp.route("", methods=["POST"])
@admin_required
def create_genre_route():
    genre, error = create_genre(get_json_payload())
    if error:
        return error_response(error)
    return (
        jsonify(
            {"message": "Genre created.", "genre": serialize_genre(genre, include_posters=False)}
        ),
        201,
    )


@genres_bp.route("/<int:genre_id>", methods=["PUT"])
@admin_required
def update_genre_route(genre_id: int):
    genre, error = update_genre(genre_id, get_json_payload())
    if error:
        return error_response(error)
    return jsonify({"message": "Genre updated.", "genre": serialize_genre(genre)})


@genres_bp.route("/<int:genre_id>", methods=["DELETE"])
@admin_required
def delete_genre_route(genre_id: int):
    _, error = delete_genre(genre_id)
    if error:
        return error_response(error)
    return jsonify({"message": "Genre deleted.", "genre": {"id": genre_id}})
