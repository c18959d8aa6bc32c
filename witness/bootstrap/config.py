"""Server configuration and CLI argument parsing."""

import argparse
import os
from dataclasses import dataclass
from typing import Optional

from witness.pipeline.middleware import Handler
from witness.security.cors import DEFAULT_ALLOWED_METHODS, CorsPolicy


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


DEFAULT_HOST = _env_str("WITNESS_HOST", "localhost")
DEFAULT_PORT = _env_int("WITNESS_PORT", 8443)
DEFAULT_TLS_CERT = _env_str("WITNESS_TLS_CERT", "")
DEFAULT_TLS_KEY = _env_str("WITNESS_TLS_KEY", "")
DEFAULT_CORS_METHODS = _env_str("WITNESS_CORS_METHODS", ",".join(DEFAULT_ALLOWED_METHODS))
DEFAULT_SOCKET_TIMEOUT = _env_int("WITNESS_SOCKET_TIMEOUT", 60)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_int("WITNESS_SHUTDOWN_GRACE_SECONDS", 30)


@dataclass(frozen=True)
class ServerConfig:
    """Everything the lifecycle needs to listen and serve; fixed at startup."""

    host: str
    port: int
    handler: Handler
    tls_cert: Optional[str] = None
    tls_key: Optional[str] = None
    socket_timeout: float = DEFAULT_SOCKET_TIMEOUT
    shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS
    cors_policy: Optional[CorsPolicy] = None

    @property
    def tls_enabled(self) -> bool:
        return bool(self.tls_cert and self.tls_key)

    @property
    def listen_address(self) -> str:
        return f"{self.host}:{self.port}"


def parse_tokens(value: Optional[str]) -> tuple[str, ...]:
    """Parse the comma-separated bearer token list; empty disables auth."""
    if not value:
        return ()
    return tuple(_split_list(value))


def parse_methods(value: Optional[str]) -> tuple[str, ...]:
    """Parse the comma-separated CORS method list, upper-cased."""
    if not value:
        return ()
    return tuple(method.upper() for method in _split_list(value))


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for server configuration."""
    parser = argparse.ArgumentParser(
        description="HTTP/HTTPS diagnostic server (echo, ip, health, headers, whoami)"
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="Host to bind to")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Listen port")
    parser.add_argument(
        "--tls-cert", default=DEFAULT_TLS_CERT, help="Path to TLS certificate file"
    )
    parser.add_argument(
        "--tls-key", default=DEFAULT_TLS_KEY, help="Path to TLS private key file"
    )
    parser.add_argument(
        "--tokens",
        default=os.getenv("WITNESS_TOKENS", ""),
        help="Comma-separated bearer tokens (none = no auth)",
    )
    parser.add_argument(
        "--cors-methods",
        default=DEFAULT_CORS_METHODS,
        help="Comma-separated methods advertised in Access-Control-Allow-Methods",
    )
    default_log_level = os.getenv("WITNESS_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("WITNESS_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--socket-timeout",
        type=int,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Idle/read timeout in seconds for client connections",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=int,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for in-flight requests during shutdown",
    )
    return parser.parse_args(argv)
