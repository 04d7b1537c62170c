from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException

from models import db


class AuthServiceError(Exception):
    """
    Base for every error the auth core raises on purpose. Routes let these
    propagate; register_error_handlers turns them into {"error": ...} bodies.
    """

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None, **extra):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_response(self):
        return jsonify(error=self.message, **self.extra), self.status_code


class ValidationError(AuthServiceError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AuthServiceError):
    status_code = 401
    default_message = "Authentication failed"


class ExpiredError(AuthServiceError):
    status_code = 401
    default_message = "Expired"


class NotFoundError(AuthServiceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AuthServiceError):
    status_code = 409
    default_message = "Conflict"


class RateLimitedError(AuthServiceError):
    status_code = 429
    default_message = "Too many requests"


class InternalError(AuthServiceError):
    status_code = 500


def register_error_handlers(app):
    @app.errorhandler(AuthServiceError)
    def _handle_auth_error(exc):
        return exc.to_response()

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc):
        return jsonify(error=exc.description or exc.name), exc.code

    @app.errorhandler(Exception)
    def _handle_unexpected(exc):
        db.session.rollback()
        current_app.logger.exception("Unhandled error: %s", exc)
        if current_app.config.get("EXPOSE_ERROR_DETAILS", False):
            return InternalError(details=f"{exc.__class__.__name__}: {exc}").to_response()
        return InternalError().to_response()
