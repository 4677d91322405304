from typing import Dict

from .aggregates import summarize_ratings
from .models import Cartline, Genre, Poster, User, UserRating
from .utils import isoformat_or_none


def serialize_user(user: User) -> Dict:
    return {
        "id": user.id,
        "firstname": user.firstname,
        "lastname": user.lastname,
        "email": user.email,
        "role": user.role,
        "isActive": bool(user.is_active),
        "createdAt": isoformat_or_none(user.created_at),
    }


def serialize_user_summary(user: User) -> Dict:
    return {
        "id": user.id,
        "firstname": user.firstname,
        "lastname": user.lastname,
    }


def serialize_genre_summary(genre: Genre) -> Dict:
    return {"id": genre.id, "title": genre.title, "slug": genre.slug}


def serialize_poster_summary(poster: Poster) -> Dict:
    return {
        "id": poster.id,
        "name": poster.name,
        "slug": poster.slug,
        "description": poster.description,
        "image": poster.image,
        "width": poster.width,
        "height": poster.height,
        "price": round(float(poster.price or 0), 2),
        "stock": poster.stock,
        "createdAt": isoformat_or_none(poster.created_at),
    }


def serialize_rating(rating: UserRating, include_user=False, include_poster=False) -> Dict:
    data = {
        "id": rating.id,
        "userId": rating.user_id,
        "posterId": rating.poster_id,
        "numStars": rating.num_stars,
        "createdAt": isoformat_or_none(rating.created_at),
    }
    if include_user and rating.user is not None:
        data["user"] = serialize_user_summary(rating.user)
    if include_poster and rating.poster is not None:
        data["poster"] = serialize_poster_summary(rating.poster)
    return data


def serialize_poster(poster: Poster, include_ratings=False) -> Dict:
    average, total = summarize_ratings(rating.num_stars for rating in poster.ratings)
    data = serialize_poster_summary(poster)
    data["genres"] = [serialize_genre_summary(genre) for genre in poster.genres]
    data["averageRating"] = average
    data["totalRatings"] = total
    if include_ratings:
        data["ratings"] = [serialize_rating(rating) for rating in poster.ratings]
    return data


def serialize_genre(genre: Genre, include_posters=True) -> Dict:
    data = serialize_genre_summary(genre)
    if include_posters:
        data["posters"] = [serialize_poster_summary(poster) for poster in genre.posters]
    return data


def serialize_cartline(cartline: Cartline, include_user=False, include_poster=True) -> Dict:
    data = {
        "id": cartline.id,
        "userId": cartline.user_id,
        "posterId": cartline.poster_id,
        "quantity": cartline.quantity,
    }
    if include_user and cartline.user is not None:
        data["user"] = serialize_user_summary(cartline.user)
    if include_poster and cartline.poster is not None:
        data["poster"] = serialize_poster_summary(cartline.poster)
    return data
