"""Request routing and middleware composition."""

import logging
from typing import Mapping, Sequence

from witness.domain.correlation_id import get_logger
from witness.domain.http_types import HttpRequest, HttpResponse
from witness.handlers.diagnostic_handlers import (
    handle_echo,
    handle_headers,
    handle_health,
    handle_ip,
    handle_not_found,
    handle_whoami,
)
from witness.pipeline.middleware import Handler, chain
from witness.pipeline.request_logging import with_logging
from witness.security.auth import require_auth
from witness.security.cors import DEFAULT_ALLOWED_METHODS, CorsPolicy, with_cors

ROUTER_LOGGER = get_logger("pipeline.router")

ROUTES: Mapping[str, Handler] = {
    "/echo": handle_echo,
    "/ip": handle_ip,
    "/health": handle_health,
    "/headers": handle_headers,
    "/whoami": handle_whoami,
}


class Router:
    """Maps exact request paths to handler chains, with a catch-all fallback."""

    def __init__(
        self,
        routes: Mapping[str, Handler],
        fallback: Handler,
        cors_policy: CorsPolicy = CorsPolicy(),
    ) -> None:
        self._routes = dict(routes)
        self._fallback = fallback
        self.cors_policy = cors_policy

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(self._routes)

    def resolve(self, path: str) -> Handler:
        """Return the chain bound to ``path`` or the fallback chain."""
        return self._routes.get(path, self._fallback)

    def dispatch(self, request: HttpRequest) -> HttpResponse:
        """Run the request through its chain."""
        if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            ROUTER_LOGGER.debug(
                "Routing request",
                extra={
                    "event": "route_matched",
                    "route": request.path if request.path in self._routes else "*",
                },
            )
        return self.resolve(request.path)(request)


def build_router(
    tokens: Sequence[str], cors_methods: Sequence[str] = DEFAULT_ALLOWED_METHODS
) -> Router:
    """Compose CORS -> logging -> auth -> handler for every route.

    An empty ``cors_methods`` falls back to the default advertised methods.
    """
    policy = CorsPolicy.for_methods(cors_methods)
    middlewares = (with_cors(policy), with_logging, require_auth(tokens))
    routes = {path: chain(handler, *middlewares) for path, handler in ROUTES.items()}
    return Router(routes, chain(handle_not_found, *middlewares), policy)
