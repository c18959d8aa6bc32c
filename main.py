"""Witness: HTTP/HTTPS diagnostic server entrypoint."""

import signal
import sys
from typing import Optional

from witness.bootstrap.config import (
    ServerConfig,
    parse_cli_args,
    parse_methods,
    parse_tokens,
)
from witness.bootstrap.logging_setup import configure_logging
from witness.lifecycle.state import (
    ListenerError,
    ServerLifecycle,
    ServerStartupError,
    ShutdownTimeoutError,
)
from witness.pipeline.router import build_router
from witness.transport.accept_loop import run_server


def main(argv: Optional[list[str]] = None) -> int:
    """Start the server and block until it stops; return the process exit code."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    logger = configure_logging(args.log_level, args.log_destination)

    tokens = parse_tokens(args.tokens)
    router = build_router(tokens, parse_methods(args.cors_methods))
    config = ServerConfig(
        host=args.host,
        port=args.port,
        handler=router.dispatch,
        tls_cert=args.tls_cert or None,
        tls_key=args.tls_key or None,
        socket_timeout=args.socket_timeout,
        shutdown_grace_seconds=args.shutdown_grace_seconds,
        cors_policy=router.cors_policy,
    )
    lifecycle = ServerLifecycle()

    def shutdown_handler(signum: int, _frame) -> None:
        logger.info(
            "Received shutdown signal",
            extra={"event": "signal_received", "signal": signal.Signals(signum).name},
        )
        lifecycle.begin_draining()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    logger.info(
        "Starting diagnostic server",
        extra={
            "event": "server_starting",
            "listen_address": config.listen_address,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
            "tls": config.tls_enabled,
            "auth_enabled": bool(tokens),
            "socket_timeout": config.socket_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
        },
    )
    try:
        run_server(config, lifecycle)
    except ServerStartupError as error:
        logger.critical(str(error), extra={"event": "startup_failed"})
        return 1
    except ListenerError as error:
        logger.critical(str(error), extra={"event": "listener_failed"})
        return 1
    except ShutdownTimeoutError as error:
        logger.error(str(error), extra={"event": "shutdown_forced"})
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
