"""Access logging middleware."""

from witness.domain.correlation_id import get_logger
from witness.domain.http_types import HttpRequest, HttpResponse
from witness.pipeline.middleware import Handler

ACCESS_LOGGER = get_logger("pipeline.access")


def with_logging(next_handler: Handler) -> Handler:
    """Log one line per request before handing it downstream."""

    def handle(request: HttpRequest) -> HttpResponse:
        ACCESS_LOGGER.info(
            "%s %s",
            request.method,
            request.path,
            extra={
                "event": "request_received",
                "method": request.method,
                "route": request.path,
                "client": request.remote_addr,
            },
        )
        return next_handler(request)

    return handle
