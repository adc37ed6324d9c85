from typing import Any, Dict, List

from .models import ApiError, ApiErrorResponse


class ElbError(Exception):
    pass


class ValidationError(ElbError, ValueError):
    """Raised for caller mistakes, always before any request is sent."""


class ResponseParseError(ElbError):
    """Raised when a response body is not well-formed XML."""


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return value.get("content") or ""
    return str(value)


def parse_errors(parsed: Dict[str, Any]) -> ApiErrorResponse:
    """
    Translate a parsed response holding an ``Errors`` node into an
    :class:`ApiErrorResponse`.

    Every ``Error`` below every ``Errors`` entry becomes one :class:`ApiError`,
    in document order. A missing or empty ``Errors`` node yields an empty
    error list.

    :param parsed: Structure returned by :func:`elb_async.parser.parse_response`.
    :type parsed: Dict[str, Any]
    :return: Request id and the ordered errors.
    :rtype: ApiErrorResponse
    """
    request_id = parsed.get("RequestID") or parsed.get("RequestId") or "N/A"

    errors: List[ApiError] = []
    for entry in _as_list(parsed.get("Errors")):
        if not isinstance(entry, dict):
            continue
        for error in _as_list(entry.get("Error")):
            if not isinstance(error, dict):
                continue
            errors.append(
                ApiError(
                    code=_text(error.get("Code")),
                    message=_text(error.get("Message")),
                )
            )

    return ApiErrorResponse(request_id=_text(request_id), errors=errors)
