from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
from flask import current_app
from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from .models import ROLE_ADMIN

# bcrypt only looks at the first 72 bytes and newer releases refuse longer input.
MAX_PASSWORD_BYTES = 72


class InvalidToken(Exception):
    """Raised when a bearer token is malformed, badly signed or expired."""


@dataclass(frozen=True)
class Identity:
    id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def hash_password(password: str) -> str:
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 10))
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def issue_token(
    user_id: int, email: str, role: str, expires_delta: Optional[timedelta] = None
) -> str:
    return create_access_token(
        identity=str(user_id),
        additional_claims={"email": email, "role": role},
        expires_delta=expires_delta,
    )


def identity_from_claims(claims: Dict[str, Any]) -> Identity:
    """Build the caller's identity from decoded access-token claims.

    Shared by the request gate (``auth.current_identity``) and ``verify_token``
    so both accept exactly the same tokens.
    """
    if claims.get("type") != "access":
        raise InvalidToken("Only access tokens are accepted.")
    try:
        return Identity(
            id=int(claims["sub"]),
            email=str(claims.get("email") or ""),
            role=str(claims.get("role") or ""),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidToken("Token does not carry a valid identity.") from exc


def verify_token(token: str) -> Identity:
    """Decode a bearer token outside of a request.

    Views rely on ``jwt_required()`` for signature and expiry checks instead;
    this is for callers holding a raw token string.
    """
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException) as exc:
        raise InvalidToken(str(exc)) from exc
    return identity_from_claims(claims)
