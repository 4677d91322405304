from typing import Dict, List, Optional, Tuple

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.orm import selectinload

from .auth import admin_required
from .errors import OperationError, bad_request, commit_or_error, error_response, not_found
from .genres import resolve_genres
from .models import Genre, GenrePosterRel, Poster, db
from .serializers import serialize_poster
from .utils import get_json_payload, is_blank, normalize_text, parse_float, parse_int, slugify

posters_bp = Blueprint("posters", __name__, url_prefix="/api/posters")

REQUIRED_POSTER_FIELDS = ("name", "description", "image", "width", "height", "price", "stock")
TEXT_FIELDS = ("name", "description", "image")


# --- Helpers ---


def _poster_query():
    return Poster.query.options(
        selectinload(Poster.genre_links).selectinload(GenrePosterRel.genre),
        selectinload(Poster.ratings),
    )


def fetch_poster(poster_id: int) -> Tuple[Optional[Poster], Optional[OperationError]]:
    poster = _poster_query().filter(Poster.id == poster_id).first()
    if not poster:
        return None, not_found("Poster not found.")
    return poster, None


def fetch_poster_by_slug(slug: str) -> Tuple[Optional[Poster], Optional[OperationError]]:
    poster = _poster_query().filter(Poster.slug == slug).first()
    if not poster:
        return None, not_found("Poster not found.")
    return poster, None


def list_posters(genre_slug: Optional[str] = None) -> List[Poster]:
    query = _poster_query()
    if genre_slug:
        query = (
            query.join(Poster.genre_links)
            .join(GenrePosterRel.genre)
            .filter(Genre.slug == genre_slug)
        )
    return query.order_by(Poster.id).all()


def slug_in_use(slug: str, exclude_id: Optional[int] = None) -> bool:
    query = Poster.query.filter(Poster.slug == slug)
    if exclude_id is not None:
        query = query.filter(Poster.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def normalize_poster_payload(
    payload: Dict, partial: bool = False
) -> Tuple[Optional[Dict], Optional[OperationError]]:
    """Validate and coerce poster fields.

    With ``partial`` only the supplied fields are returned, which is what an
    update applies. ``slug`` is normalized; on create it falls back to the
    slugified name.
    """
    if not partial:
        missing = [field for field in REQUIRED_POSTER_FIELDS if is_blank(payload.get(field))]
        if missing:
            return None, bad_request(f"Missing required fields: {', '.join(missing)}.")

    values: Dict[str, object] = {}

    for field in TEXT_FIELDS:
        if field in payload:
            text = normalize_text(payload.get(field))
            if not text:
                return None, bad_request(f"{field.capitalize()} cannot be empty.")
            values[field] = text

    for field in ("width", "height"):
        if field in payload:
            dimension = parse_int(payload.get(field), minimum=1)
            if dimension is None:
                return None, bad_request(
                    f"{field.capitalize()} must be a whole number greater than zero."
                )
            values[field] = dimension

    if "price" in payload:
        price_value = parse_float(payload.get("price"))
        if price_value is None:
            return None, bad_request("Price must be a valid number.")
        price_value = round(price_value, 2)
        if price_value <= 0:
            return None, bad_request("Price must be greater than zero.")
        values["price"] = price_value

    if "stock" in payload:
        stock = parse_int(payload.get("stock"), minimum=0)
        if stock is None:
            return None, bad_request("Stock must be a whole number of zero or more.")
        values["stock"] = stock

    raw_slug = payload.get("slug")
    if not is_blank(raw_slug):
        values["slug"] = slugify(raw_slug)
    elif "slug" in payload and partial:
        return None, bad_request("A poster slug cannot be empty.")
    elif not partial:
        values["slug"] = slugify(values["name"])

    return values, None


def assign_genres(poster: Poster, genres: List[Genre]) -> None:
    wanted = {genre.id: genre for genre in genres}
    for link in list(poster.genre_links):
        if link.genre_id in wanted:
            wanted.pop(link.genre_id)
        else:
            poster.genre_links.remove(link)
    for genre in wanted.values():
        poster.genre_links.append(GenrePosterRel(genre=genre))


def create_poster(payload: Dict) -> Tuple[Optional[Poster], Optional[OperationError]]:
    values, validation_error = normalize_poster_payload(payload)
    if validation_error:
        return None, validation_error

    genres, genre_error = resolve_genres(payload.get("genreIds"))
    if genre_error:
        return None, genre_error

    if slug_in_use(values["slug"]):
        return None, bad_request("A poster with this slug already exists.")

    poster = Poster(**values)
    assign_genres(poster, genres)
    db.session.add(poster)
    commit_error = commit_or_error("Could not create the poster.")
    if commit_error:
        return None, commit_error

    current_app.logger.info("Created poster %s (%s)", poster.id, poster.slug)
    return poster, None


def update_poster(poster_id: int, payload: Dict) -> Tuple[Optional[Poster], Optional[OperationError]]:
    values, validation_error = normalize_poster_payload(payload, partial=True)
    if validation_error:
        return None, validation_error

    genres = None
    if "genreIds" in payload:
        genres, genre_error = resolve_genres(payload.get("genreIds") or [])
        if genre_error:
            return None, genre_error

    poster, load_error = fetch_poster(poster_id)
    if load_error:
        return None, load_error

    if "slug" in values and slug_in_use(values["slug"], exclude_id=poster.id):
        return None, bad_request("A poster with this slug already exists.")

    for attribute, value in values.items():
        setattr(poster, attribute, value)
    if genres is not None:
        assign_genres(poster, genres)

    commit_error = commit_or_error("Could not update the poster.")
    if commit_error:
        return None, commit_error
    return poster, None


def delete_poster(poster_id: int) -> Tuple[Optional[Poster], Optional[OperationError]]:
    poster, load_error = fetch_poster(poster_id)
    if load_error:
        return None, load_error

    db.session.delete(poster)
    commit_error = commit_or_error("Could not delete the poster.")
    if commit_error:
        return None, commit_error

    current_app.logger.info("Deleted poster %s", poster_id)
    return poster, None


# --- ROUTES ---


@posters_bp.route("", methods=["GET"])
def list_posters_route():
    genre_slug = (request.args.get("genre") or "").strip() or None
    posters = list_posters(genre_slug)
    return jsonify({"posters": [serialize_poster(poster) for poster in posters]})


@posters_bp.route("/<int:poster_id>", methods=["GET"])
def get_poster(poster_id: int):
    poster, error = fetch_poster(poster_id)
    if error:
        return error_response(error)
    return jsonify({"poster": serialize_poster(poster, include_ratings=True)})


@posters_bp.route("/slug/<slug>", methods=["GET"])
def get_poster_by_slug(slug: str):
    poster, error = fetch_poster_by_slug(slug)
    if error:
        return error_response(error)
    return jsonify({"poster": serialize_poster(poster, include_ratings=True)})


@posters_bp.route("", methods=["POST"])
@admin_required
def create_poster_route():
    poster, error = create_poster(get_json_payload())
    if error:
        return error_response(error)
    return jsonify({"message": "Poster created.", "poster": serialize_poster(poster)}), 201


@posters_bp.route("/<int:poster_id>", methods=["PUT"])
@admin_required
def update_poster_route(poster_id: int):
    poster, error = update_poster(poster_id, get_json_payload())
    if error:
        return error_response(error)
    return jsonify({"message": "Poster updated.", "poster": serialize_poster(poster)})


@posters_bp.route("/<int:poster_id>", methods=["DELETE"])
@admin_required
def delete_poster_route(poster_id: int):
    _, error = delete_poster(poster_id)
    if error:
        return error_response(error)
    return jsonify({"message": "Poster deleted.", "poster": {"id": poster_id}})
