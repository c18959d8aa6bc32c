"""Main connection acceptance loop and shutdown coordination."""

import errno
import socket
import threading
import time

from witness.bootstrap.config import ServerConfig
from witness.bootstrap.socket_factory import create_server_socket
from witness.domain.correlation_id import get_logger
from witness.domain.response_builders import draining_response
from witness.lifecycle.state import (
    ListenerError,
    ServerLifecycle,
    ShutdownOutcome,
    ShutdownTimeoutError,
)
from witness.pipeline.io import send_response
from witness.transport.context import WorkerContext
from witness.transport.worker import handle_client, with_server_headers

ACCEPT_LOGGER = get_logger("transport.accept")

# accept() failures that concern a single connection or momentary resource
# pressure; the listener itself is still healthy.
TRANSIENT_ACCEPT_ERRNOS = {
    errno.ECONNABORTED,
    errno.EINTR,
    errno.EMFILE,
    errno.ENFILE,
    errno.ENOBUFS,
    errno.ENOMEM,
    errno.EPROTO,
    errno.EPERM,
}
TRANSIENT_BACKOFF_SECONDS = 0.05


def _is_transient(error: OSError) -> bool:
    return isinstance(error, ConnectionError) or error.errno in TRANSIENT_ACCEPT_ERRNOS


def _reject_draining(client_socket: socket.socket, context: WorkerContext) -> None:
    """Answer a connection that raced the shutdown request with 503."""
    try:
        client_socket.settimeout(1.0)
        send_response(client_socket, with_server_headers(draining_response(), context))
    except OSError:
        pass
    finally:
        client_socket.close()


def _start_worker(
    client_socket: socket.socket,
    client_address: tuple,
    context: WorkerContext,
) -> None:
    """Spawn and register the worker thread for an accepted connection."""
    ACCEPT_LOGGER.debug(
        "Client connection accepted",
        extra={"event": "client_accepted", "client": str(client_address[0])},
    )
    thread = threading.Thread(
        target=handle_client,
        args=(client_socket, client_address, context),
        name=f"witness-worker-{client_address[0]}:{client_address[1]}",
        daemon=True,
    )
    # Registered before start so a drain can never miss a just-accepted worker.
    context.lifecycle.register_worker(thread, client_socket)
    thread.start()


def _accept_until_stopped(
    server_socket: socket.socket, context: WorkerContext
) -> None:
    """Accept connections until cancellation; raise ListenerError on fatal failure."""
    lifecycle = context.lifecycle
    while True:
        try:
            client_socket, client_address = server_socket.accept()
        except socket.timeout:
            if lifecycle.should_stop():
                return
            continue
        except OSError as error:
            if lifecycle.should_stop():
                return
            if _is_transient(error):
                ACCEPT_LOGGER.warning(
                    "Socket accept failed",
                    extra={
                        "event": "accept_error",
                        "error_type": type(error).__name__,
                        "errno": error.errno,
                    },
                )
                time.sleep(TRANSIENT_BACKOFF_SECONDS)
                continue
            raise ListenerError(f"listener failed: {error}") from error

        if lifecycle.should_stop():
            _reject_draining(client_socket, context)
            continue
        _start_worker(client_socket, client_address, context)


def run_server(config: ServerConfig, lifecycle: ServerLifecycle) -> ShutdownOutcome:
    """Listen, serve until cancelled, then drain within the grace period.

    Returns ShutdownOutcome.DRAINED after a clean drain. Raises
    ServerStartupError if the socket cannot be bound, ListenerError if the
    listener fails while serving, and ShutdownTimeoutError when connections
    had to be force-closed after the grace period.
    """
    try:
        server_socket = create_server_socket(config)
    except Exception:
        lifecycle.mark_failed()
        raise

    context = WorkerContext(config=config, lifecycle=lifecycle)
    lifecycle.mark_listening(server_socket.getsockname())
    ACCEPT_LOGGER.info(
        "Server listening for connections",
        extra={
            "event": "server_listening",
            "listen_address": config.listen_address,
            "port": server_socket.getsockname()[1],
            "tls": config.tls_enabled,
        },
    )

    try:
        _accept_until_stopped(server_socket, context)
    except ListenerError as error:
        server_socket.close()
        lifecycle.mark_failed()
        ACCEPT_LOGGER.critical(
            "Listener failed",
            extra={"event": "listener_failed", "error_type": type(error.__cause__).__name__},
        )
        lifecycle.close_connections()
        raise

    server_socket.close()
    ACCEPT_LOGGER.info(
        "Waiting for active connections to complete",
        extra={
            "event": "shutdown_waiting",
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
            "remaining_workers": lifecycle.active_worker_count(),
        },
    )
    drained = lifecycle.wait_for_workers(config.shutdown_grace_seconds)
    if not drained:
        forced = lifecycle.close_connections()
        lifecycle.mark_stopped()
        raise ShutdownTimeoutError(config.shutdown_grace_seconds, forced)

    lifecycle.mark_stopped()
    ACCEPT_LOGGER.info("Server shutdown complete", extra={"event": "server_stopped"})
    return ShutdownOutcome.DRAINED
