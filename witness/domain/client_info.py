"""Client identity helpers: IP resolution and header flattening."""

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from witness.domain.tls_info import TlsSummary

FORWARDED_FOR_HEADER = "X-Forwarded-For"
REAL_IP_HEADER = "X-Real-Ip"


def _first_value(headers: Mapping[str, Sequence[str]], name: str) -> str:
    values = headers.get(name)
    return values[0] if values else ""


def resolve_client_ip(headers: Mapping[str, Sequence[str]], remote_addr: str) -> str:
    """Return the originating client address for a request.

    ``X-Forwarded-For`` wins and contributes only its first (client) entry,
    then ``X-Real-IP`` verbatim, then the transport peer address. Values are
    not validated; proxy headers are trusted as sent.
    """
    forwarded_for = _first_value(headers, FORWARDED_FOR_HEADER)
    if forwarded_for:
        return forwarded_for.split(",", 1)[0].strip()

    real_ip = _first_value(headers, REAL_IP_HEADER)
    if real_ip:
        return real_ip

    return remote_addr


def extract_headers(headers: Mapping[str, Sequence[str]]) -> dict[str, str]:
    """Flatten multi-valued headers, joining repeated values with ``", "``."""
    return {name: ", ".join(values) for name, values in headers.items()}


def format_peer_address(address: tuple) -> str:
    """Render a socket peer address as ``host:port`` with IPv6 hosts bracketed."""
    host, port = address[0], address[1]
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class Identity:
    """What the server can tell about the caller of a single request."""

    ip: str
    tls: TlsSummary
    headers: dict[str, str]

    def to_dict(self) -> dict[str, Any]:
        return {"ip": self.ip, "tls": self.tls.to_dict(), "headers": self.headers}
