from __future__ import annotations

from typing import Any


class ApiError(Exception):
    """
    Base for errors that map to an HTTP response.

    Rendered as {"error": message, "details": [...]}; `details` carries
    itemized problems (missing field names, per-field messages).
    """

    status_code = 500

    def __init__(self, message: str, details: list[Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = list(details or [])

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.message}
        if self.details:
            out["details"] = self.details
        return out


class ValidationError(ApiError):
    status_code = 400


class AuthenticationError(ApiError):
    status_code = 401


class AuthorizationError(ApiError):
    status_code = 403


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409


class TooManyRequestsError(ApiError):
    status_code = 429


class InternalError(ApiError):
    status_code = 500
