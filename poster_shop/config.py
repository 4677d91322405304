import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///poster_shop.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
    # Tokens are valid for a fixed week; there is no refresh flow.
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=7)

    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

    DEFAULT_ADMIN_EMAIL = (os.getenv("DEFAULT_ADMIN_EMAIL") or "").strip().lower()

    CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "")
    TRUSTED_PROXY_HOPS = os.getenv("TRUSTED_PROXY_HOPS", "1")

    CSV_SEED_DIR = os.getenv("CSV_SEED_DIR", "csv")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "poster-shop-testing-secret-key-0123456789"
    BCRYPT_ROUNDS = 4
    DEFAULT_ADMIN_EMAIL = ""
