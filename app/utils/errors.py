"""Utility helpers for standardized error responses."""
from typing import Any


class PaymentValidationError(ValueError):
    """Raised when a phone number or amount is not acceptable.

    The message is user-facing and is returned verbatim to the caller.
    """


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


def failure_response(message: str) -> dict[str, Any]:
    """Return the ``{success: false, error}`` body of the STK-push endpoint."""

    return {"success": False, "error": message}


__all__ = ["PaymentValidationError", "error_response", "failure_response"]
