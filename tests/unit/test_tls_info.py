"""Unit tests for TLS summary extraction."""

import socket
import ssl
from unittest.mock import MagicMock

from witness.domain.tls_info import NO_TLS, TlsSummary, extract_tls_info


def _tls_socket(version, cipher_name, ciphers):
    connection = MagicMock(spec=ssl.SSLSocket)
    connection.version.return_value = version
    connection.cipher.return_value = (cipher_name, version, 256) if cipher_name else None
    connection.context.get_ciphers.return_value = ciphers
    return connection


def test_plaintext_connection_yields_absent_summary():
    """Plain sockets carry no TLS state."""
    assert extract_tls_info(MagicMock(spec=socket.socket)) == NO_TLS


def test_missing_connection_yields_absent_summary():
    """A request without a connection reports no TLS."""
    assert extract_tls_info(None) == TlsSummary(0, 0)


def test_tls13_version_and_cipher_codes():
    """TLS 1.3 maps to 0x0304 and the cipher id's low 16 bits give the suite code."""
    connection = _tls_socket(
        "TLSv1.3",
        "TLS_AES_256_GCM_SHA384",
        [
            {"name": "TLS_AES_128_GCM_SHA256", "id": 0x03001301},
            {"name": "TLS_AES_256_GCM_SHA384", "id": 0x03001302},
        ],
    )
    assert extract_tls_info(connection) == TlsSummary(version=0x0304, cipher_suite=0x1302)


def test_tls12_cipher_code():
    """TLS 1.2 suites resolve through the same cipher table."""
    connection = _tls_socket(
        "TLSv1.2",
        "ECDHE-RSA-AES128-GCM-SHA256",
        [{"name": "ECDHE-RSA-AES128-GCM-SHA256", "id": 0x0300C02F}],
    )
    summary = extract_tls_info(connection)
    assert summary.version == 771
    assert summary.cipher_suite == 0xC02F


def test_unknown_names_map_to_zero():
    """Unrecognized versions or ciphers are reported as zero, not guessed."""
    connection = _tls_socket("TLSv9", "MYSTERY", [])
    assert extract_tls_info(connection) == TlsSummary(0, 0)


def test_handshake_not_completed_yields_absent_summary():
    """A TLS socket without a negotiated session reports no TLS."""
    connection = _tls_socket(None, None, [])
    assert extract_tls_info(connection) == NO_TLS


def test_summary_serializes_numeric_codes():
    """The JSON form carries the numeric codes only."""
    assert TlsSummary(0x0304, 0x1301).to_dict() == {"version": 772, "cipher_suite": 4865}
