"""Integration tests for graceful shutdown and process exit codes."""

# pylint: disable=redefined-outer-name

import signal
import socket
import subprocess
import time
from pathlib import Path

import pytest

from tests.utils.http import (
    read_http_response,
    reserve_port,
    send_signal_to_process,
    wait_for_port,
)
from tests.utils.process import PROJECT_ROOT, server_command

pytestmark = pytest.mark.integration

HOST = "127.0.0.1"
PARTIAL_ECHO = b"POST /echo HTTP/1.1\r\nHost: localhost\r\nContent-Length: 10\r\n\r\nhello"


def _start(port: int, log_file: Path, grace: int) -> subprocess.Popen:
    return subprocess.Popen(
        server_command(
            HOST,
            port,
            log_file,
            "--shutdown-grace-seconds",
            str(grace),
            "--socket-timeout",
            "30",
        ),
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


@pytest.fixture
def server_process_info(tmp_path):
    """Start a server with a 5 second grace period and yield its details."""
    port = reserve_port()
    process = _start(port, tmp_path / "server.log", grace=5)
    wait_for_port(HOST, port, timeout=5.0)
    yield {"process": process, "port": port, "log_file": tmp_path / "server.log"}
    if process.poll() is None:
        process.kill()
    process.wait(timeout=5.0)
    process.stdout.close()
    process.stderr.close()


def test_in_flight_request_completes_before_exit(server_process_info):
    """A request in progress when SIGTERM arrives still gets its response."""
    process = server_process_info["process"]
    with socket.create_connection((HOST, server_process_info["port"]), timeout=5.0) as sock:
        sock.sendall(PARTIAL_ECHO)
        time.sleep(0.2)
        send_signal_to_process(process.pid, signal.SIGTERM)
        time.sleep(0.3)
        assert process.poll() is None

        sock.sendall(b" world")
        response = read_http_response(sock)
        assert response.status_code == 200
        assert response.body == b"hello worl"
        assert response.headers["connection"] == "close"

    assert process.wait(timeout=6.0) == 0


def test_listener_stops_accepting_after_signal(server_process_info):
    process = server_process_info["process"]
    send_signal_to_process(process.pid, signal.SIGTERM)
    assert process.wait(timeout=6.0) == 0
    with pytest.raises(OSError):
        socket.create_connection((HOST, server_process_info["port"]), timeout=1.0)


def test_sigint_also_drains(server_process_info):
    process = server_process_info["process"]
    send_signal_to_process(process.pid, signal.SIGINT)
    assert process.wait(timeout=6.0) == 0


def test_idle_keep_alive_connection_does_not_delay_exit(server_process_info):
    process = server_process_info["process"]
    with socket.create_connection((HOST, server_process_info["port"]), timeout=5.0) as sock:
        sock.sendall(b"GET /health HTTP/1.1\r\nHost: localhost\r\n\r\n")
        assert read_http_response(sock).status_code == 200

        start = time.monotonic()
        send_signal_to_process(process.pid, signal.SIGTERM)
        assert process.wait(timeout=6.0) == 0
        assert time.monotonic() - start < 3.0


def test_grace_period_expiry_exits_with_error(tmp_path):
    """A request that outlives the grace period is force-closed and exit is 1."""
    port = reserve_port()
    log_file = tmp_path / "server.log"
    process = _start(port, log_file, grace=1)
    try:
        wait_for_port(HOST, port, timeout=5.0)
        with socket.create_connection((HOST, port), timeout=5.0) as sock:
            sock.sendall(PARTIAL_ECHO)
            time.sleep(0.2)
            start = time.monotonic()
            send_signal_to_process(process.pid, signal.SIGTERM)
            assert process.wait(timeout=6.0) == 1
            assert time.monotonic() - start < 4.0
        assert "force-closed" in log_file.read_text()
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()
        process.stdout.close()
        process.stderr.close()


def test_occupied_port_exits_with_error(tmp_path):
    with socket.create_server((HOST, 0)) as holder:
        port = holder.getsockname()[1]
        process = _start(port, tmp_path / "server.log", grace=1)
        try:
            assert process.wait(timeout=10.0) == 1
        finally:
            process.stdout.close()
            process.stderr.close()
    assert "startup_failed" in (tmp_path / "server.log").read_text()
