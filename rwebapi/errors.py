"""Errors that handlers raise and how they turn into HTTP responses."""

from __future__ import annotations

import logging
from http import HTTPStatus

log = logging.getLogger(__name__)

_HIDDEN_MESSAGE = "Internal server error"


class ApiError(Exception):
    """Base class of errors reported to API clients."""

    status_code: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    label = "Error"
    exposed = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.label}: {self.message}"

    def to_response(self) -> tuple[int, str]:
        """Return ``(status, body)``; internal details are logged, not exposed."""
        if self.exposed:
            return int(self.status_code), self.message
        log.error("%s: %s", self.label, self.message)
        return int(self.status_code), _HIDDEN_MESSAGE


class DatabaseError(ApiError):
    """A database operation failed."""

    label = "Database error"


class BadRequest(ApiError):
    """The client sent an invalid request."""

    status_code = HTTPStatus.BAD_REQUEST
    label = "Bad request"
    exposed = True


class NotFound(ApiError):
    """The requested resource does not exist."""

    status_code = HTTPStatus.NOT_FOUND
    label = "Not found"
    exposed = True


class InternalServerError(ApiError):
    """An unexpected failure inside the service."""

    label = "Internal server error"