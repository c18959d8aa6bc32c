"""Server lifecycle state management."""

import enum
import socket
import threading
import time
from typing import Optional

from witness.domain.correlation_id import get_logger

LIFECYCLE_LOGGER = get_logger("lifecycle")


class ServerState(enum.Enum):
    """Lifecycle states of the listening server."""

    IDLE = "idle"
    LISTENING = "listening"
    DRAINING = "draining"
    STOPPED = "stopped"
    FAILED = "failed"


class ShutdownOutcome(enum.Enum):
    """Result of a shutdown that finished inside the grace period."""

    DRAINED = "drained"


class ServerStartupError(Exception):
    """The listening socket could not be created."""


class ListenerError(Exception):
    """The listening socket failed while serving."""


class ShutdownTimeoutError(Exception):
    """Connections were still open when the grace period expired."""

    def __init__(self, grace_seconds: float, forced_connections: int) -> None:
        super().__init__(
            f"{forced_connections} connection(s) force-closed after "
            f"{grace_seconds:g}s grace period"
        )
        self.grace_seconds = grace_seconds
        self.forced_connections = forced_connections


class ServerLifecycle:
    """Tracks lifecycle state, the cancellation signal and live worker connections."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._listening_event = threading.Event()
        self._draining_event = threading.Event()
        self._state = ServerState.IDLE
        self._bound_address: Optional[tuple] = None
        self._workers: dict[threading.Thread, socket.socket] = {}

    @property
    def state(self) -> ServerState:
        with self._lock:
            state = self._state
        if state in (ServerState.IDLE, ServerState.LISTENING) and self._draining_event.is_set():
            return ServerState.DRAINING
        return state

    @property
    def bound_address(self) -> Optional[tuple]:
        """The socket address the server is listening on, once listening."""
        with self._lock:
            return self._bound_address

    def should_stop(self) -> bool:
        """Check if the server should stop accepting new connections."""
        return self._stop_event.is_set()

    def is_draining(self) -> bool:
        """Check if a shutdown has been requested."""
        return self._stop_event.is_set()

    def mark_listening(self, address: tuple) -> None:
        """Record the bound address and move IDLE -> LISTENING."""
        with self._lock:
            self._bound_address = address
            if self._state is ServerState.IDLE:
                self._state = ServerState.LISTENING
        self._listening_event.set()

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening; False on timeout."""
        return self._listening_event.wait(timeout)

    def begin_draining(self) -> None:
        """Signal the server to begin graceful shutdown.

        Runs inside signal handlers on the main thread, so it must never take
        ``_lock``: the interrupted code may already hold it.
        """
        if self._state in (ServerState.STOPPED, ServerState.FAILED):
            return
        self._stop_event.set()
        self._draining_event.set()
        LIFECYCLE_LOGGER.info(
            "Beginning graceful shutdown", extra={"event": "shutdown_requested"}
        )

    def mark_stopped(self) -> None:
        with self._lock:
            self._state = ServerState.STOPPED

    def mark_failed(self) -> None:
        with self._lock:
            self._state = ServerState.FAILED
        self._stop_event.set()
        # Unblock anyone waiting for a listener that will never come up.
        self._listening_event.set()

    def register_worker(
        self, thread: threading.Thread, client_socket: socket.socket
    ) -> None:
        """Register a worker thread and the connection it serves."""
        with self._lock:
            self._workers[thread] = client_socket

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.pop(thread, None)

    def has_worker(self, thread: threading.Thread) -> bool:
        """Return True when the worker is currently tracked."""
        with self._lock:
            return thread in self._workers

    def active_worker_count(self) -> int:
        """Return the number of currently tracked worker threads."""
        with self._lock:
            return len(self._workers)

    def wait_for_workers(self, timeout: float) -> bool:
        """Wait for all worker threads to complete within the timeout."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                finished = [w for w in self._workers if w.ident is not None and not w.is_alive()]
                for worker in finished:
                    del self._workers[worker]
                active_workers = list(self._workers)
            if not active_workers:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={"event": "shutdown_timeout", "remaining_workers": len(active_workers)},
                )
                return False
            for worker in active_workers:
                worker.join(timeout=min(0.1, remaining))
                if time.monotonic() >= deadline:
                    break

    def close_connections(self) -> int:
        """Force-close every tracked connection and return how many were open."""
        with self._lock:
            connections = list(self._workers.values())
        for client_socket in connections:
            try:
                client_socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            client_socket.close()
        if connections:
            LIFECYCLE_LOGGER.warning(
                "Force-closed connections",
                extra={"event": "connections_forced", "remaining_workers": len(connections)},
            )
        return len(connections)
