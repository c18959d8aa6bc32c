"""Worker thread logic for handling individual client connections."""

import logging
import socket
import ssl
import threading
import time
from typing import Optional

from witness.domain.client_info import format_peer_address
from witness.domain.correlation_id import (
    adopt_correlation_id,
    clear_correlation_id,
    generate_correlation_id,
    get_logger,
    set_correlation_id,
)
from witness.domain.http_types import HttpRequest, HttpResponse, should_close
from witness.domain.response_builders import (
    bad_request_response,
    internal_error_response,
)
from witness.pipeline.io import receive_request, send_response
from witness.security.cors import apply_cors_headers
from witness.transport.context import WorkerContext

WORKER_LOGGER = get_logger("transport.worker")

IDLE_POLL_SECONDS = 0.5


def _perform_handshake(client_socket: socket.socket, client_addr_str: str) -> bool:
    """Complete the TLS handshake for TLS connections; False when it fails."""
    if not isinstance(client_socket, ssl.SSLSocket):
        return True
    try:
        client_socket.do_handshake()
    except (ssl.SSLError, OSError) as error:
        WORKER_LOGGER.warning(
            "TLS handshake failed",
            extra={
                "event": "tls_handshake_failed",
                "client": client_addr_str,
                "error_type": type(error).__name__,
            },
        )
        return False
    return True


def _await_next_request(
    client_socket: socket.socket, context: WorkerContext
) -> Optional[bytes]:
    """Wait for the first bytes of the next request on an idle connection.

    Polls in short slices so an idle keep-alive connection notices a
    shutdown request promptly. Bytes that already arrived are always
    served. Returns None when the connection should be closed (draining
    while idle, idle timeout or peer hang-up).
    """
    idle_timeout = context.config.socket_timeout
    deadline = time.monotonic() + idle_timeout
    try:
        while True:
            remaining = deadline - time.monotonic()
            client_socket.settimeout(max(0.01, min(IDLE_POLL_SECONDS, remaining)))
            try:
                chunk = client_socket.recv(4096)
            except socket.timeout:
                if context.lifecycle.is_draining():
                    return None
                if time.monotonic() >= deadline:
                    if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
                        WORKER_LOGGER.debug(
                            "Idle connection timed out", extra={"event": "idle_timeout"}
                        )
                    return None
                continue
            return chunk or None
    finally:
        client_socket.settimeout(idle_timeout)


def with_server_headers(response: HttpResponse, context: WorkerContext) -> HttpResponse:
    """Add the CORS headers to a response built outside the handler chain."""
    if context.config.cors_policy is not None:
        apply_cors_headers(response, context.config.cors_policy)
    return response


def _dispatch(request: HttpRequest, context: WorkerContext) -> HttpResponse:
    """Run the handler chain, turning unexpected failures into a 500."""
    try:
        return context.config.handler(request)
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unhandled error in request handler",
            extra={
                "event": "handler_error",
                "route": request.path,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
        return with_server_headers(internal_error_response(), context)


def _serve_request(
    client_socket: socket.socket,
    buffer: bytes,
    remote_addr: str,
    context: WorkerContext,
) -> Optional[bytes]:
    """Read, dispatch and answer one request.

    Returns the bytes already received for the next request, or None when
    the connection must be closed.
    """
    try:
        request, reader = receive_request(client_socket, buffer, remote_addr)
    except ValueError:
        WORKER_LOGGER.warning(
            "Malformed request received",
            extra={"event": "malformed_request", "client": remote_addr},
        )
        send_response(client_socket, with_server_headers(bad_request_response(), context))
        return None

    if request is None or reader is None:
        if WORKER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            WORKER_LOGGER.debug(
                "Client disconnected during request",
                extra={"event": "client_disconnected", "client": remote_addr},
            )
        return None

    adopt_correlation_id(request.header("X-Request-ID"))
    started = time.monotonic()
    response = _dispatch(request, context)

    leftover = reader.finish()
    if leftover is None or should_close(request) or context.lifecycle.is_draining():
        response.close_connection = True

    send_response(client_socket, response, include_body=request.method != "HEAD")
    WORKER_LOGGER.debug(
        "Request processing complete",
        extra={
            "event": "request_complete",
            "client": remote_addr,
            "route": request.path,
            "status_code": response.status.value,
            "duration_ms": round((time.monotonic() - started) * 1000, 3),
        },
    )
    return None if response.close_connection else leftover


def _close_connection(client_socket: socket.socket) -> None:
    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    client_socket.close()


def handle_client(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Serve requests on a client socket until the connection is closed."""
    remote_addr = format_peer_address(client_address)
    client_socket.settimeout(context.config.socket_timeout)

    try:
        if not _perform_handshake(client_socket, remote_addr):
            return
        buffer: Optional[bytes] = b""
        while buffer is not None:
            if not buffer:
                buffer = _await_next_request(client_socket, context)
                if buffer is None:
                    break
            set_correlation_id(generate_correlation_id())
            try:
                buffer = _serve_request(client_socket, buffer, remote_addr, context)
            finally:
                clear_correlation_id()
    except (ConnectionError, TimeoutError, OSError) as error:
        log = WORKER_LOGGER.warning
        if context.lifecycle.is_draining():
            log = WORKER_LOGGER.info
        log(
            "Error handling client connection",
            extra={
                "event": "connection_error",
                "client": remote_addr,
                "error_type": type(error).__name__,
            },
        )
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error in worker",
            extra={
                "event": "worker_error",
                "client": remote_addr,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
    finally:
        context.lifecycle.cleanup_worker(threading.current_thread())
        _close_connection(client_socket)
        WORKER_LOGGER.debug(
            "Socket closed", extra={"event": "socket_closed", "client": remote_addr}
        )
