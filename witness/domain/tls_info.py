"""Negotiated TLS parameters as numeric wire codes."""

import socket
import ssl
from dataclasses import dataclass
from typing import Optional

TLS_VERSION_CODES = {
    "SSLv3": 0x0300,
    "TLSv1": 0x0301,
    "TLSv1.1": 0x0302,
    "TLSv1.2": 0x0303,
    "TLSv1.3": 0x0304,
}

# OpenSSL cipher ids carry the IANA suite code in the low 16 bits.
_CIPHER_CODE_MASK = 0xFFFF


@dataclass(frozen=True)
class TlsSummary:
    """Negotiated protocol version and cipher suite; zeros mean plaintext."""

    version: int = 0
    cipher_suite: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"version": self.version, "cipher_suite": self.cipher_suite}


NO_TLS = TlsSummary()


def _cipher_code(connection: ssl.SSLSocket, cipher_name: str) -> int:
    for cipher in connection.context.get_ciphers():
        if cipher.get("name") == cipher_name:
            return cipher.get("id", 0) & _CIPHER_CODE_MASK
    return 0


def extract_tls_info(connection: Optional[socket.socket]) -> TlsSummary:
    """Return the TLS summary for a connection, or NO_TLS for plaintext."""
    if not isinstance(connection, ssl.SSLSocket):
        return NO_TLS

    version_name = connection.version()
    negotiated = connection.cipher()
    if version_name is None or negotiated is None:
        return NO_TLS

    return TlsSummary(
        version=TLS_VERSION_CODES.get(version_name, 0),
        cipher_suite=_cipher_code(connection, negotiated[0]),
    )
