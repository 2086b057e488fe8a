"""Exceptions raised by the services and the JSON error handlers for them."""

import logging

from flask import jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class FleetError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int = None, payload: dict = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload or {}

    def to_dict(self) -> dict:
        body = dict(self.payload)
        body['error'] = self.message
        return body


class ValidationFailed(FleetError):
    status_code = 400


class NotFound(FleetError):
    status_code = 404


class Conflict(FleetError):
    status_code = 409


class ExternalServiceError(FleetError):
    status_code = 502


def describe_validation_error(exc: ValidationError) -> str:
    """Flatten a pydantic error into ``field: message`` pairs."""
    parts = []
    for err in exc.errors():
        field = '.'.join(str(p) for p in err['loc']) or 'body'
        parts.append(f"{field}: {err['msg']}")
    return '; '.join(parts)


def register_error_handlers(app, db):
    @app.errorhandler(FleetError)
    def handle_fleet_error(exc: FleetError):
        if exc.status_code >= 500:
            logger.error("%s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return jsonify({'error': describe_validation_error(exc)}), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({'error': exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        db.session.rollback()
        logger.exception("Unhandled error")
        return jsonify({'error': str(exc) or exc.__class__.__name__}), 500
