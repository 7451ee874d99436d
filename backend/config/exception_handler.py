from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from config import domain_exceptions as domain

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
_DOMAIN_ERROR_STATUS: list[tuple[type[domain.DomainError], str, int]] = [
    (domain.ValidationError, "validation_error", status.HTTP_400_BAD_REQUEST),
    (domain.UnauthorizedError, "unauthorized", status.HTTP_401_UNAUTHORIZED),
    (domain.ForbiddenError, "forbidden", status.HTTP_403_FORBIDDEN),
    (domain.NotFoundError, "not_found", status.HTTP_404_NOT_FOUND),
    (domain.ConflictError, "conflict", status.HTTP_409_CONFLICT),
    (domain.DomainError, "bad_request", status.HTTP_400_BAD_REQUEST),
]


def _error_response(
    *,
    error_status: str,
    message: str,
    http_status: int,
    details: dict[str, list[str]] | None = None,
    code: str | None = None,
) -> Response:
    error: dict[str, object] = {
        "status": error_status,
        "message": message,
    }
    if details:
        error["details"] = details
    if code:
        error["code"] = code
    return Response({"error": error}, status=http_status)


def _first_message(data: Any) -> str | None:
    if isinstance(data, str):
        return data or None
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes, bytearray)):
        return next((item for item in data if isinstance(item, str) and item), None)
    if not isinstance(data, Mapping):
        return None

    for key in ("detail", "message"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value

    for key, value in data.items():
        if isinstance(value, str) and value:
            return f"{key}: {value}"
        if isinstance(value, Sequence) and value and isinstance(value[0], str):
            return value[0] if key == "non_field_errors" else f"{key}: {value[0]}"
    return None


def _flatten_error_details(details: Any, path: str = "") -> dict[str, list[str]]:
    """Flatten nested DRF validation errors into dotted field paths."""
    out: dict[str, list[str]] = {}
    if isinstance(details, Mapping):
        for key, value in details.items():
            child = f"{path}.{key}" if path else str(key)
            for child_key, messages in _flatten_error_details(value, child).items():
                out.setdefault(child_key, []).extend(messages)
        return out

    if isinstance(details, Sequence) and not isinstance(details, (str, bytes, bytearray)):
        if all(isinstance(item, str) or not isinstance(item, (Mapping, Sequence)) for item in details):
            out[path or "non_field_errors"] = [str(item) for item in details]
            return out
        for idx, item in enumerate(details):
            child = f"{path}.{idx}" if path else str(idx)
            for child_key, messages in _flatten_error_details(item, child).items():
                out.setdefault(child_key, []).extend(messages)
        return out

    out[path or "non_field_errors"] = [str(details)]
    return out


def _drf_error_status(exc: Exception, response: Response) -> str:
    if isinstance(exc, drf_exceptions.ValidationError):
        return "validation_error"
    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        return "unauthorized"
    if isinstance(exc, drf_exceptions.PermissionDenied):
        return "forbidden"
    if isinstance(exc, drf_exceptions.NotFound):
        return "not_found"
    if isinstance(exc, drf_exceptions.MethodNotAllowed):
        return "method_not_allowed"
    if isinstance(exc, drf_exceptions.Throttled):
        return "rate_limited"
    if response.status_code >= 500:
        return "server_error"
    return "bad_request"


def _wrap_drf_error(exc: Exception, response: Response) -> Response:
    details: dict[str, list[str]] | None = None
    message = _first_message(response.data) or "Request failed."

    if isinstance(exc, drf_exceptions.ValidationError):
        details = _flatten_error_details(response.data)
        if len(details) == 1:
            messages = next(iter(details.values()))
            message = messages[0] if messages else "One or more fields failed validation."
        else:
            message = "One or more fields failed validation."

    wrapped = _error_response(
        error_status=_drf_error_status(exc, response),
        message=message,
        http_status=response.status_code,
        details=details,
    )
    # Keep WWW-Authenticate and friends set by DRF.
    for header, value in response.items():
        wrapped[header] = value
    return wrapped


def custom_exception_handler(exc: Exception, context):
    """
    Central exception->HTTP mapping for domain/use-case exceptions.

    Views raise meaningful exceptions; this layer translates them into the
    `{"error": {...}}` body shared by every endpoint.
    """

    response = drf_exception_handler(exc, context)
    if response is not None:
        return _wrap_drf_error(exc, response)

    if isinstance(exc, domain.DomainError):
        for exc_type, error_status, http_status in _DOMAIN_ERROR_STATUS:
            if isinstance(exc, exc_type):
                return _error_response(
                    error_status=error_status,
                    message=str(exc),
                    http_status=http_status,
                    code=getattr(exc, "code", None),
                )

    logger.exception(
        "Unhandled exception in API view: %s",
        context.get("view").__class__.__name__ if context.get("view") else "unknown",
        exc_info=exc,
    )
    return None
