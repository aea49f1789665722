"""Error types raised by the request handlers and their JSON rendering."""

from typing import Optional

from flask import Flask, jsonify
from pymongo.errors import PyMongoError
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    status_code = 500
    message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_response(self):
        return jsonify({"message": self.message}), self.status_code


class MissingToken(ApiError):
    status_code = 401
    message = "Unauthorized access: No token provided"


class InvalidToken(ApiError):
    status_code = 401
    message = "Unauthorized access: Invalid or expired token"


class Forbidden(ApiError):
    status_code = 403
    message = "Forbidden: Cannot view other users' bids"


class BadRequest(ApiError):
    status_code = 400
    message = "The request body is not valid."


class InvalidId(BadRequest):
    message = "Invalid identifier format."


class NotFound(ApiError):
    status_code = 404
    message = "Resource not found."


class NotFoundOrNotOwned(NotFound):
    message = "Bid not found or not owned by user."


class StoreFailure(ApiError):
    status_code = 500
    message = "A database error occurred."


class StartupError(RuntimeError):
    """Raised when the service cannot be brought up (bad credentials, store down)."""


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def handle_api_error(error: ApiError):
        return error.to_response()

    @app.errorhandler(PyMongoError)
    def handle_store_error(error: PyMongoError):
        app.logger.exception("Database error while handling request: %s", error)
        return StoreFailure().to_response()

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            return error
        app.logger.exception("Unhandled error while handling request: %s", error)
        return ApiError().to_response()
