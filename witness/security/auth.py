"""Bearer token authentication middleware."""

import logging
from typing import Sequence

from witness.domain.correlation_id import get_logger
from witness.domain.http_types import HttpRequest, HttpResponse
from witness.domain.response_builders import unauthorized_response
from witness.pipeline.middleware import Handler, Middleware

AUTH_LOGGER = get_logger("security.auth")

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str) -> str | None:
    """Return the token from ``Bearer <token>``, or None when the scheme is wrong."""
    if not authorization.startswith(BEARER_PREFIX):
        return None
    return authorization[len(BEARER_PREFIX) :]


def require_auth(tokens: Sequence[str]) -> Middleware:
    """Build a middleware admitting only requests that carry an allowed token.

    An empty ``tokens`` sequence disables authentication and the middleware
    passes every request through. Comparison is exact and case-sensitive.
    """
    allowed = tuple(tokens)

    def middleware(next_handler: Handler) -> Handler:
        if not allowed:
            return next_handler

        def handle(request: HttpRequest) -> HttpResponse:
            token = extract_bearer_token(request.header("Authorization"))
            if token is None:
                if AUTH_LOGGER.logger.isEnabledFor(logging.DEBUG):
                    AUTH_LOGGER.debug(
                        "Missing or malformed Authorization header",
                        extra={"event": "auth_missing", "route": request.path},
                    )
                return unauthorized_response()
            if token in allowed:
                return next_handler(request)
            AUTH_LOGGER.warning(
                "Rejected bearer token",
                extra={"event": "auth_rejected", "route": request.path},
            )
            return unauthorized_response()

        return handle

    return middleware
