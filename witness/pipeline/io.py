"""HTTP Input/Output operations."""

import logging
import socket
import urllib.parse
from email.utils import formatdate
from typing import Optional, Tuple

from witness.domain.correlation_id import get_correlation_id, get_logger
from witness.domain.http_types import (
    BodyReadError,
    HttpRequest,
    HttpResponse,
    canonical_header_name,
)

IO_LOGGER = get_logger("pipeline.io")

HEADER_DELIMITER = b"\r\n\r\n"
CRLF = b"\r\n"
RECV_SIZE = 4096
MAX_HEADER_BYTES = 1 << 20
SUPPORTED_VERSIONS = {"HTTP/1.0", "HTTP/1.1"}
CONTINUE_RESPONSE = b"HTTP/1.1 100 Continue\r\n\r\n"


def parse_headers(lines: list[str]) -> dict[str, list[str]]:
    """Group raw header lines by canonical name, keeping every value in order."""
    parsed: dict[str, list[str]] = {}
    for line in lines:
        name, separator, value = line.partition(":")
        if not separator or not name or name != name.strip():
            raise ValueError("Malformed header line")
        parsed.setdefault(canonical_header_name(name), []).append(value.strip())
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str, str]:
    """Parse the HTTP method, decoded path and protocol version."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if not method or not target or version not in SUPPORTED_VERSIONS:
        raise ValueError("Invalid request line")

    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path) or "/"
    return method, path, version


def determine_body_framing(headers: dict[str, list[str]]) -> Tuple[int, bool]:
    """Return ``(content_length, chunked)`` for the request body."""
    transfer_encoding = ", ".join(headers.get("Transfer-Encoding", [])).strip().lower()
    if transfer_encoding:
        if transfer_encoding != "chunked":
            raise ValueError("Unsupported Transfer-Encoding")
        return 0, True

    values = headers.get("Content-Length")
    if not values:
        return 0, False
    if len(set(values)) != 1:
        raise ValueError("Conflicting Content-Length")
    try:
        content_length = int(values[0])
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    return content_length, False


class BodyReader:
    """Reads a request body on demand and keeps the bytes that follow it."""

    def __init__(
        self,
        client_socket: socket.socket,
        buffer: bytes,
        content_length: int = 0,
        chunked: bool = False,
        expect_continue: bool = False,
    ) -> None:
        # pylint: disable=too-many-arguments, too-many-positional-arguments
        self._socket = client_socket
        self._buffer = buffer
        self._content_length = content_length
        self._chunked = chunked
        self._expect_continue = expect_continue and (chunked or content_length > 0)
        self._body: Optional[bytes] = None
        self._error: Optional[BodyReadError] = None

    def read(self) -> bytes:
        """Return the whole body, reading it from the socket on first use."""
        if self._error is not None:
            raise self._error
        if self._body is not None:
            return self._body
        try:
            if self._expect_continue:
                self._socket.sendall(CONTINUE_RESPONSE)
                self._expect_continue = False
            if self._chunked:
                self._body = self._read_chunked()
            else:
                self._body = self._take(self._content_length)
        except BodyReadError as error:
            self._error = error
            raise
        except (OSError, ValueError) as error:
            self._error = BodyReadError(str(error) or type(error).__name__)
            raise self._error from error
        return self._body

    def finish(self) -> Optional[bytes]:
        """Consume any unread body and return the bytes of the next request.

        Returns None when the connection cannot carry another request: the
        body failed to arrive, or the client is still waiting for a
        ``100 Continue`` that was never sent.
        """
        if self._body is None and self._expect_continue:
            return None
        try:
            self.read()
        except BodyReadError:
            return None
        return self._buffer

    def _fill(self) -> None:
        chunk = self._socket.recv(RECV_SIZE)
        if not chunk:
            raise BodyReadError("Connection closed before body completed")
        self._buffer += chunk

    def _take(self, size: int) -> bytes:
        while len(self._buffer) < size:
            self._fill()
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def _read_line(self) -> bytes:
        while CRLF not in self._buffer:
            if len(self._buffer) > MAX_HEADER_BYTES:
                raise BodyReadError("Chunk header too long")
            self._fill()
        line, self._buffer = self._buffer.split(CRLF, 1)
        return line

    def _read_chunked(self) -> bytes:
        chunks: list[bytes] = []
        while True:
            size_field = self._read_line().split(b";", 1)[0].strip()
            size = int(size_field, 16)
            if size == 0:
                break
            chunks.append(self._take(size))
            if self._take(len(CRLF)) != CRLF:
                raise BodyReadError("Malformed chunk terminator")
        while self._read_line():
            pass
        return b"".join(chunks)


def receive_request(
    client_socket: socket.socket, buffer: bytes, remote_addr: str
) -> Tuple[Optional[HttpRequest], Optional[BodyReader]]:
    """Read bytes from the socket until a complete request head is available.

    Returns ``(None, None)`` when the peer closes before sending a full head.
    """
    while HEADER_DELIMITER not in buffer:
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Request head too large")
        chunk = client_socket.recv(RECV_SIZE)
        if not chunk:
            return None, None
        buffer += chunk

    header_block, remainder = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("latin-1").split("\r\n")
    method, path, version = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])
    content_length, chunked = determine_body_framing(headers)
    expect_continue = (
        ", ".join(headers.get("Expect", [])).lower() == "100-continue"
        and version == "HTTP/1.1"
    )

    reader = BodyReader(client_socket, remainder, content_length, chunked, expect_continue)
    request = HttpRequest(
        method=method,
        path=path,
        headers=headers,
        remote_addr=remote_addr,
        version=version,
        connection=client_socket,
        body_reader=reader.read,
    )
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Parsed request", extra={"method": method, "route": path}
        )
    return request, reader


def serialize_response(response: HttpResponse, include_body: bool = True) -> bytes:
    """Render the status line, headers and (optionally) body of a response."""
    headers = dict(response.headers)

    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id

    headers.setdefault("Date", formatdate(usegmt=True))
    headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"

    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    header_block = "\r\n".join(header_lines).encode("latin-1") + HEADER_DELIMITER
    return header_block + response.body if include_body else header_block


def send_response(
    client_socket: socket.socket, response: HttpResponse, include_body: bool = True
) -> None:
    """Serialize and send the HTTP response over the socket."""
    client_socket.sendall(serialize_response(response, include_body))
    if IO_LOGGER.logger.isEnabledFor(logging.DEBUG):
        IO_LOGGER.debug(
            "Sent response",
            extra={"status_code": response.status.value, "bytes_out": len(response.body)},
        )
