"""Handler and middleware types plus chain composition."""

from typing import Callable

from witness.domain.http_types import HttpRequest, HttpResponse

Handler = Callable[[HttpRequest], HttpResponse]
Middleware = Callable[[Handler], Handler]


def chain(handler: Handler, *middlewares: Middleware) -> Handler:
    """Wrap ``handler`` so that ``middlewares[0]`` runs first on each request.

    ``chain(h, a, b, c)`` is ``a(b(c(h)))``.
    """
    wrapped = handler
    for middleware in reversed(middlewares):
        wrapped = middleware(wrapped)
    return wrapped
