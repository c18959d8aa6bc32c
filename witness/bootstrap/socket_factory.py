"""Socket creation and TLS configuration."""

import socket
import ssl

from witness.bootstrap.config import ServerConfig
from witness.domain.correlation_id import get_logger
from witness.lifecycle.state import ServerStartupError

SOCKET_LOGGER = get_logger("socket")

ACCEPT_POLL_SECONDS = 0.5


def create_tls_context(cert_path: str, key_path: str) -> ssl.SSLContext:
    """Build a server-side TLS context from a certificate chain and key."""
    tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    tls_context.load_cert_chain(cert_path, key_path)
    return tls_context


def create_server_socket(config: ServerConfig) -> socket.socket:
    """Bind the listening socket, wrapping it in TLS when cert and key are set.

    Handshakes are deferred to the worker thread so a slow or plaintext
    client cannot stall the accept loop.
    """
    try:
        server_socket = socket.create_server((config.host, config.port))
    except OSError as error:
        SOCKET_LOGGER.critical(
            "Failed to bind listening socket",
            extra={
                "event": "bind_failed",
                "host": config.host,
                "port": config.port,
                "error_type": type(error).__name__,
                "errno": error.errno,
            },
        )
        raise ServerStartupError(
            f"cannot listen on {config.host}:{config.port}: {error}"
        ) from error

    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    if not config.tls_enabled:
        return server_socket

    try:
        tls_context = create_tls_context(config.tls_cert, config.tls_key)
    except (ssl.SSLError, OSError) as error:
        server_socket.close()
        SOCKET_LOGGER.critical(
            "Failed to load TLS certificates",
            extra={"event": "tls_config_failed", "error_type": type(error).__name__},
        )
        raise ServerStartupError(f"cannot load TLS material: {error}") from error
    return tls_context.wrap_socket(
        server_socket, server_side=True, do_handshake_on_connect=False
    )
