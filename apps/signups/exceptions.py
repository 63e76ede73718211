"""Error taxonomy of the signup engine.

Service functions raise these directly; DRF turns them into responses and
``api_exception_handler`` renders every error body as
``{"ok": false, "error": "..."}``.
"""
from __future__ import annotations

from rest_framework import exceptions, status
from rest_framework.views import exception_handler


class SignupError(exceptions.APIException):
    kind = "Error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request failed"


class SignupValidationError(SignupError):
    """A required field is missing or malformed."""

    kind = "Validation"
    default_detail = "Invalid input"


class ConflictError(SignupError):
    """Uniqueness or capacity violation."""

    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class NotFoundError(SignupError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ForbiddenError(SignupError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class InvalidStateError(SignupError):
    """The operation violates a lifecycle or time-window rule."""

    kind = "InvalidState"
    default_detail = "Operation not allowed in the current state"


def _format_error_detail(detail) -> str:
    if isinstance(detail, (list, tuple)):
        return " ".join(_format_error_detail(item) for item in detail)
    if isinstance(detail, dict):
        return " ".join(
            f"{key}: {_format_error_detail(value)}" if key != "non_field_errors"
            else _format_error_detail(value)
            for key, value in detail.items()
        )
    return str(detail)


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return None
    detail = getattr(exc, "detail", None)
    if detail is None:
        detail = response.data.get("detail", response.data)
    response.data = {"ok": False, "error": _format_error_detail(detail)}
    return response
