import sqlite3
from datetime import datetime

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()

ROLE_USER = "USER"
ROLE_ADMIN = "ADMIN"
ALLOWED_ROLES = {ROLE_USER, ROLE_ADMIN}

MIN_STARS = 1
MAX_STARS = 5


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores REFERENCES clauses unless this is set on every connection.
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()


class User(db.Model):
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(
            f"role IN ('{ROLE_USER}', '{ROLE_ADMIN}')", name="ck_user_role_allowed"
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    firstname = db.Column(db.String(100), nullable=False)
    lastname = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)  # bcrypt digest
    role = db.Column(db.String(10), nullable=False, default=ROLE_USER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    cartlines = db.relationship(
        "Cartline", back_populates="user", cascade="all, delete-orphan"
    )
    ratings = db.relationship(
        "UserRating", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


class Poster(db.Model):
    __tablename__ = "posters"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=False)
    image = db.Column(db.String(500), nullable=False)
    width = db.Column(db.Integer, nullable=False)
    height = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Float, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    genre_links = db.relationship(
        "GenrePosterRel", back_populates="poster", cascade="all, delete-orphan"
    )
    cartlines = db.relationship(
        "Cartline", back_populates="poster", cascade="all, delete-orphan"
    )
    ratings = db.relationship(
        "UserRating", back_populates="poster", cascade="all, delete-orphan"
    )

    @property
    def genres(self):
        return [link.genre for link in self.genre_links]


class Genre(db.Model):
    __tablename__ = "genres"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)

    poster_links = db.relationship(
        "GenrePosterRel", back_populates="genre", cascade="all, delete-orphan"
    )

    @property
    def posters(self):
        return [link.poster for link in self.poster_links]


class GenrePosterRel(db.Model):
    __tablename__ = "genre_poster_rel"

    genre_id = db.Column(
        db.Integer, db.ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True
    )
    poster_id = db.Column(
        db.Integer, db.ForeignKey("posters.id", ondelete="CASCADE"), primary_key=True
    )

    genre = db.relationship("Genre", back_populates="poster_links")
    poster = db.relationship("Poster", back_populates="genre_links")


class Cartline(db.Model):
    __tablename__ = "cartlines"
    __table_args__ = (
        db.UniqueConstraint("user_id", "poster_id", name="uq_cartline_user_poster"),
        db.CheckConstraint("quantity > 0", name="ck_cartline_quantity_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    poster_id = db.Column(
        db.Integer, db.ForeignKey("posters.id", ondelete="CASCADE"), nullable=False
    )
    quantity = db.Column(db.Integer, nullable=False)

    user = db.relationship("User", back_populates="cartlines")
    poster = db.relationship("Poster", back_populates="cartlines")


class UserRating(db.Model):
    __tablename__ = "user_ratings"
    __table_args__ = (
        db.UniqueConstraint("user_id", "poster_id", name="uq_rating_user_poster"),
        db.CheckConstraint(
            f"num_stars BETWEEN {MIN_STARS} AND {MAX_STARS}",
            name="ck_rating_num_stars_range",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    poster_id = db.Column(
        db.Integer, db.ForeignKey("posters.id", ondelete="CASCADE"), nullable=False
    )
    num_stars = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship("User", back_populates="ratings")
    poster = db.relationship("Poster", back_populates="ratings")
