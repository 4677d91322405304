from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from flask import Flask, Response, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .models import db
from .security import InvalidToken


class ErrorKind(Enum):
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    INTERNAL = 500

    @property
    def status_code(self) -> int:
        return self.value


@dataclass(frozen=True)
class OperationError:
    """Failure value returned by entity operations in place of raising."""

    kind: ErrorKind
    message: str


def bad_request(message: str) -> OperationError:
    return OperationError(ErrorKind.BAD_REQUEST, message)


def unauthorized(message: str) -> OperationError:
    return OperationError(ErrorKind.UNAUTHORIZED, message)


def forbidden(message: str) -> OperationError:
    return OperationError(ErrorKind.FORBIDDEN, message)


def not_found(message: str) -> OperationError:
    return OperationError(ErrorKind.NOT_FOUND, message)


def internal(message: str) -> OperationError:
    return OperationError(ErrorKind.INTERNAL, message)


def error_response(error: OperationError) -> Tuple[Response, int]:
    return jsonify({"error": error.message}), error.kind.status_code


def commit_or_error(message: str) -> Optional[OperationError]:
    """Commit the session; on a storage failure roll back and report ``message``."""
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(message)
        return internal(message)
    return None


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        return jsonify({"error": exc.description or exc.name}), exc.code

    @app.errorhandler(InvalidToken)
    def handle_invalid_identity(exc: InvalidToken):
        app.logger.warning("Rejected token claims: %s", exc)
        return error_response(unauthorized("Invalid token."))

    @app.errorhandler(Exception)
    def handle_unexpected_exception(exc: Exception):
        db.session.rollback()
        app.logger.exception("Unhandled error while processing request")
        return error_response(internal("Something went wrong. Please try again."))
