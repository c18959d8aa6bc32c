"""HTTP response builders for the server."""

import json
from http import HTTPStatus
from typing import Any

from witness.domain.correlation_id import get_logger
from witness.domain.http_types import HttpResponse

RESPONSE_LOGGER = get_logger("domain.responses")

TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
JSON_CONTENT_TYPE = "application/json"


def empty_response(status: HTTPStatus = HTTPStatus.OK) -> HttpResponse:
    """Return a response with the given status and no body."""
    return HttpResponse(status, {}, b"")


def bytes_response(payload: bytes) -> HttpResponse:
    """Return a 200 response carrying ``payload`` untouched."""
    return HttpResponse(HTTPStatus.OK, {}, payload)


def text_response(message: str, status: HTTPStatus = HTTPStatus.OK) -> HttpResponse:
    """Return a text/plain response."""
    return HttpResponse(status, {"Content-Type": TEXT_CONTENT_TYPE}, message.encode())


def json_response(payload: Any) -> HttpResponse:
    """Serialize ``payload`` to JSON, falling back to an empty 500 on failure.

    Serialization happens before a status is chosen, so a failure can never
    follow an already committed 200.
    """
    try:
        body = json.dumps(payload).encode() + b"\n"
    except (TypeError, ValueError) as error:
        RESPONSE_LOGGER.error(
            "Response serialization failed",
            extra={"event": "serialization_error", "error_type": type(error).__name__},
        )
        return internal_error_response()
    return HttpResponse(HTTPStatus.OK, {"Content-Type": JSON_CONTENT_TYPE}, body)


def unauthorized_response() -> HttpResponse:
    """Produce the 401 returned by the auth middleware."""
    return text_response("Unauthorized", HTTPStatus.UNAUTHORIZED)


def not_found_response() -> HttpResponse:
    """Produce an empty 404."""
    return empty_response(HTTPStatus.NOT_FOUND)


def internal_error_response() -> HttpResponse:
    """Produce an empty 500."""
    return empty_response(HTTPStatus.INTERNAL_SERVER_ERROR)


def bad_request_response() -> HttpResponse:
    """Produce a 400 that always closes the connection."""
    return HttpResponse(HTTPStatus.BAD_REQUEST, {}, b"", True)


def draining_response() -> HttpResponse:
    """Produce a 503 for connections that arrive while the server drains."""
    return HttpResponse(HTTPStatus.SERVICE_UNAVAILABLE, {}, b"draining", True)
