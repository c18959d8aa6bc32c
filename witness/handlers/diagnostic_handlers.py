"""Diagnostic handlers: echo, ip, health, headers, whoami and not-found."""

import logging
from datetime import datetime, timezone

from witness.domain.client_info import Identity, extract_headers, resolve_client_ip
from witness.domain.correlation_id import get_logger
from witness.domain.http_types import BodyReadError, HttpRequest, HttpResponse
from witness.domain.response_builders import (
    bytes_response,
    internal_error_response,
    json_response,
    not_found_response,
    text_response,
)
from witness.domain.tls_info import extract_tls_info

HANDLER_LOGGER = get_logger("handlers.diagnostic")

RFC3339_UTC = "%Y-%m-%dT%H:%M:%SZ"


def utc_timestamp() -> str:
    """Current UTC time in RFC 3339 form with second precision."""
    return datetime.now(timezone.utc).strftime(RFC3339_UTC)


def handle_echo(request: HttpRequest) -> HttpResponse:
    """Return the request body unmodified."""
    try:
        body = request.read_body()
    except BodyReadError as error:
        HANDLER_LOGGER.warning(
            "Failed to read request body",
            extra={"event": "body_read_failed", "error_type": type(error).__name__},
        )
        return internal_error_response()
    if HANDLER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        HANDLER_LOGGER.debug(
            "Echo request processed",
            extra={"event": "echo_request", "bytes_in": len(body)},
        )
    return bytes_response(body)


def handle_ip(request: HttpRequest) -> HttpResponse:
    """Return the resolved client IP as plain text."""
    return text_response(resolve_client_ip(request.headers, request.remote_addr))


def handle_health(_request: HttpRequest) -> HttpResponse:
    """Report liveness with the current UTC time."""
    return json_response({"status": "ok", "timestamp": utc_timestamp()})


def handle_headers(request: HttpRequest) -> HttpResponse:
    """Return the request headers as a flat JSON object."""
    return json_response(extract_headers(request.headers))


def handle_whoami(request: HttpRequest) -> HttpResponse:
    """Return IP, TLS parameters and headers in one JSON document."""
    identity = Identity(
        ip=resolve_client_ip(request.headers, request.remote_addr),
        tls=extract_tls_info(request.connection),
        headers=extract_headers(request.headers),
    )
    return json_response(identity.to_dict())


def handle_not_found(request: HttpRequest) -> HttpResponse:
    """Catch-all for paths without a route."""
    HANDLER_LOGGER.info(
        "No matching route found",
        extra={"event": "route_not_found", "route": request.path, "method": request.method},
    )
    return not_found_response()
