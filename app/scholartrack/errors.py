"""
Error taxonomy for the ScholarTrack API.

Service functions raise these; the handlers registered by `register_error_handlers`
turn them into JSON bodies of the form {"error": "...", **details}.
"""
from __future__ import annotations

from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException


class ScholarTrackError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        body.update(self.details)
        return body


class UnauthorizedError(ScholarTrackError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(ScholarTrackError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(ScholarTrackError):
    status_code = 404
    default_message = "Not found"

    @classmethod
    def for_entity(cls, entity: str, entity_id: object) -> "NotFoundError":
        return cls(f"{entity} not found", details={"id": entity_id})


class ValidationError(ScholarTrackError):
    status_code = 400
    default_message = "Invalid request"

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationError":
        # First error doubles as the human-readable message.
        return cls(errors[0], details={"errors": errors})


class ConflictError(ScholarTrackError):
    status_code = 409
    default_message = "Conflicting update, retry the request"


class RateLimitedError(ScholarTrackError):
    status_code = 429
    default_message = "Too many attempts"

    def __init__(self, retry_after: int, message: str | None = None):
        super().__init__(message, details={"retryAfter": retry_after})
        self.retry_after = retry_after


class StorageError(ScholarTrackError):
    status_code = 503
    default_message = "Object storage unavailable"


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ScholarTrackError)
    def _handle_app_error(e: ScholarTrackError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s)", e.message, getattr(g, "request_id", None))
        resp = jsonify(e.to_dict())
        resp.status_code = e.status_code
        if isinstance(e, RateLimitedError):
            resp.headers["Retry-After"] = str(e.retry_after)
        return resp

    @app.errorhandler(HTTPException)
    def _handle_http_error(e: HTTPException):  # type: ignore[no-redef]
        resp = jsonify({"error": e.description or e.name})
        resp.status_code = e.code or 500
        return resp

    @app.errorhandler(Exception)
    def _handle_unexpected(e: Exception):  # type: ignore[no-redef]
        # Stack trace goes to the logs, never to the client.
        app.logger.exception("Unhandled error (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error"}), 500
