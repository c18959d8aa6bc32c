"""Unit tests for ServerLifecycle state management."""

import socket
import subprocess
import sys
import textwrap
import threading
import time
from unittest.mock import MagicMock

import pytest

from tests.utils.process import PROJECT_ROOT
from witness.lifecycle.state import (
    ServerLifecycle,
    ServerState,
    ShutdownTimeoutError,
)


class TestServerLifecycle:
    """State transitions and worker tracking."""

    def test_initial_state(self):
        lifecycle = ServerLifecycle()
        assert lifecycle.state is ServerState.IDLE
        assert not lifecycle.should_stop()
        assert not lifecycle.is_draining()
        assert lifecycle.bound_address is None

    def test_listening_then_draining_then_stopped(self):
        lifecycle = ServerLifecycle()
        lifecycle.mark_listening(("127.0.0.1", 8443))
        assert lifecycle.state is ServerState.LISTENING
        assert lifecycle.wait_until_listening(0)
        assert lifecycle.bound_address == ("127.0.0.1", 8443)

        lifecycle.begin_draining()
        assert lifecycle.state is ServerState.DRAINING
        assert lifecycle.should_stop()
        assert lifecycle.is_draining()

        lifecycle.mark_stopped()
        assert lifecycle.state is ServerState.STOPPED

    def test_drain_request_after_stop_is_ignored(self):
        lifecycle = ServerLifecycle()
        lifecycle.mark_stopped()
        lifecycle.begin_draining()
        assert lifecycle.state is ServerState.STOPPED

    def test_failure_unblocks_listening_waiters(self):
        lifecycle = ServerLifecycle()
        lifecycle.mark_failed()
        assert lifecycle.state is ServerState.FAILED
        assert lifecycle.wait_until_listening(0)
        assert lifecycle.bound_address is None

    def test_wait_for_workers_returns_true_when_idle(self):
        assert ServerLifecycle().wait_for_workers(timeout=0.1)

    def test_wait_for_workers_waits_for_completion(self):
        lifecycle = ServerLifecycle()
        worker = threading.Thread(target=time.sleep, args=(0.2,))
        lifecycle.register_worker(worker, MagicMock(spec=socket.socket))
        worker.start()
        assert lifecycle.wait_for_workers(timeout=2.0)
        assert lifecycle.active_worker_count() == 0

    def test_wait_for_workers_times_out(self):
        lifecycle = ServerLifecycle()
        release = threading.Event()
        worker = threading.Thread(target=release.wait, args=(5,))
        lifecycle.register_worker(worker, MagicMock(spec=socket.socket))
        worker.start()
        try:
            start = time.monotonic()
            assert not lifecycle.wait_for_workers(timeout=0.3)
            assert time.monotonic() - start < 1.0
            assert lifecycle.has_worker(worker)
        finally:
            release.set()
            worker.join()

    def test_cleanup_worker(self):
        lifecycle = ServerLifecycle()
        worker = threading.Thread(target=lambda: None)
        lifecycle.register_worker(worker, MagicMock(spec=socket.socket))
        lifecycle.cleanup_worker(worker)
        assert not lifecycle.has_worker(worker)

    def test_close_connections_shuts_down_tracked_sockets(self):
        lifecycle = ServerLifecycle()
        connection = MagicMock(spec=socket.socket)
        connection.shutdown.side_effect = OSError("already closed")
        lifecycle.register_worker(threading.Thread(target=lambda: None), connection)

        assert lifecycle.close_connections() == 1
        connection.shutdown.assert_called_once_with(socket.SHUT_RDWR)
        connection.close.assert_called_once()


def test_shutdown_timeout_error_describes_forced_connections():
    error = ShutdownTimeoutError(30, 2)
    assert error.forced_connections == 2
    assert error.grace_seconds == 30
    assert "2 connection(s)" in str(error)


SIGNAL_WHILE_LOCKED = textwrap.dedent(
    """
    import signal

    from witness.lifecycle.state import ServerLifecycle

    lifecycle = ServerLifecycle()
    lifecycle.mark_listening(("127.0.0.1", 8443))
    signal.signal(signal.SIGTERM, lambda *_: lifecycle.begin_draining())
    with lifecycle._lock:
        signal.raise_signal(signal.SIGTERM)
        print("draining" if lifecycle.is_draining() else "running")
    print(lifecycle.state.value)
    """
)


@pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX signal delivery")
def test_shutdown_signal_while_registry_lock_is_held():
    """begin_draining from a signal handler must not wait on the registry lock."""
    completed = subprocess.run(
        [sys.executable, "-c", SIGNAL_WHILE_LOCKED],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=10,
        check=False,
    )
    assert completed.returncode == 0, completed.stderr
    assert completed.stdout.split() == ["draining", "draining"]
