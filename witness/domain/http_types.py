"""Shared HTTP type definitions to avoid circular imports."""

import socket
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Callable, Optional


class BodyReadError(Exception):
    """Raised when a request body cannot be read from the connection."""


def canonical_header_name(name: str) -> str:
    """Normalize a header name to canonical MIME form (``x-real-ip`` -> ``X-Real-Ip``)."""
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


def _no_body() -> bytes:
    return b""


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request.

    ``headers`` maps canonical header names to every value received for that
    name, in arrival order. The body is read lazily through ``body_reader`` so
    handlers that never touch it do not pay for it.
    """

    method: str
    path: str
    headers: dict[str, list[str]] = field(default_factory=dict)
    remote_addr: str = ""
    version: str = "HTTP/1.1"
    connection: Optional[socket.socket] = None
    body_reader: Callable[[], bytes] = _no_body

    def header(self, name: str) -> str:
        """Return the first value of ``name`` or an empty string."""
        values = self.headers.get(canonical_header_name(name))
        return values[0] if values else ""

    def read_body(self) -> bytes:
        """Return the full request body, raising BodyReadError on failure."""
        return self.body_reader()


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status: HTTPStatus
    headers: dict[str, str]
    body: bytes
    close_connection: bool = False

    @property
    def status_line(self) -> str:
        return f"HTTP/1.1 {self.status.value} {self.status.phrase}"


def should_close(request: HttpRequest) -> bool:
    """Determine whether the connection should be closed after responding."""
    connection = request.header("Connection").lower()
    if request.version == "HTTP/1.0":
        return connection != "keep-alive"
    return connection == "close"
