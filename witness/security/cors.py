"""CORS (Cross-Origin Resource Sharing) middleware."""

from dataclasses import dataclass
from http import HTTPStatus
from typing import Sequence

from witness.domain.http_types import HttpRequest, HttpResponse
from witness.domain.response_builders import empty_response
from witness.pipeline.middleware import Handler, Middleware

ALLOW_ALL_ORIGINS = "*"
DEFAULT_ALLOWED_METHODS = ("GET",)
DEFAULT_ALLOWED_HEADERS = ("Content-Type", "Authorization")


@dataclass(frozen=True)
class CorsPolicy:
    """Permissive CORS policy applied to every response."""

    allowed_methods: tuple[str, ...] = DEFAULT_ALLOWED_METHODS
    allowed_headers: tuple[str, ...] = DEFAULT_ALLOWED_HEADERS
    allowed_origin: str = ALLOW_ALL_ORIGINS

    @classmethod
    def for_methods(cls, methods: Sequence[str]) -> "CorsPolicy":
        """Policy advertising ``methods``; an empty sequence keeps the default."""
        return cls(allowed_methods=tuple(methods) or DEFAULT_ALLOWED_METHODS)

    def headers(self) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.allowed_origin,
            "Access-Control-Allow-Methods": ", ".join(self.allowed_methods),
            "Access-Control-Allow-Headers": ", ".join(self.allowed_headers),
        }


def is_preflight_request(request: HttpRequest) -> bool:
    """Every OPTIONS request is answered as a preflight."""
    return request.method == "OPTIONS"


def apply_cors_headers(response: HttpResponse, policy: CorsPolicy) -> HttpResponse:
    """Set the policy headers on ``response``, replacing earlier values."""
    response.headers.update(policy.headers())
    return response


def with_cors(policy: CorsPolicy) -> Middleware:
    """Build a middleware that adds CORS headers and short-circuits preflights."""

    def middleware(next_handler: Handler) -> Handler:
        def handle(request: HttpRequest) -> HttpResponse:
            if is_preflight_request(request):
                return apply_cors_headers(empty_response(HTTPStatus.OK), policy)
            return apply_cors_headers(next_handler(request), policy)

        return handle

    return middleware
