import itertools

import pytest

from poster_shop import create_app
from poster_shop.config import TestingConfig
from poster_shop.models import ROLE_ADMIN, ROLE_USER, Genre, GenrePosterRel, Poster, User, db
from poster_shop.security import hash_password, issue_token

DEFAULT_PASSWORD = "correct horse battery"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make_user(role=ROLE_USER, email=None, password=DEFAULT_PASSWORD, is_active=True):
        number = next(counter)
        with app.app_context():
            user = User(
                firstname="Test",
                lastname=f"User{number}",
                email=email or f"user{number}@example.com",
                password=hash_password(password),
                role=role,
                is_active=is_active,
            )
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture
def token_headers(app):
    def _token_headers(user_id, role=ROLE_USER, expires_delta=None):
        with app.app_context():
            token = issue_token(
                user_id, f"user{user_id}@example.com", role, expires_delta=expires_delta
            )
        return {"Authorization": f"Bearer {token}"}

    return _token_headers


@pytest.fixture
def user_auth(make_user, token_headers):
    """An ordinary account and the headers that authenticate as it."""
    user_id = make_user()
    return user_id, token_headers(user_id)


@pytest.fixture
def admin_auth(make_user, token_headers):
    admin_id = make_user(role=ROLE_ADMIN)
    return admin_id, token_headers(admin_id, role=ROLE_ADMIN)


@pytest.fixture
def make_genre(app):
    def _make_genre(title="Nature", slug=None):
        with app.app_context():
            genre = Genre(title=title, slug=slug or title.lower())
            db.session.add(genre)
            db.session.commit()
            return genre.id

    return _make_genre


@pytest.fixture
def make_poster(app):
    counter = itertools.count(1)

    def _make_poster(genre_ids=(), **overrides):
        number = next(counter)
        values = {
            "name": f"Poster {number}",
            "slug": f"poster-{number}",
            "description": "A fine print.",
            "image": f"poster-{number}.jpg",
            "width": 50,
            "height": 70,
            "price": 199.95,
            "stock": 10,
        }
        values.update(overrides)
        with app.app_context():
            poster = Poster(**values)
            for genre_id in genre_ids:
                poster.genre_links.append(GenrePosterRel(genre_id=genre_id))
            db.session.add(poster)
            db.session.commit()
            return poster.id

    return _make_poster
