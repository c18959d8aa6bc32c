"""Context object shared across worker threads."""

from dataclasses import dataclass

from witness.bootstrap.config import ServerConfig
from witness.lifecycle.state import ServerLifecycle


@dataclass(frozen=True)
class WorkerContext:
    """Read-only dependencies handed to every worker thread."""

    config: ServerConfig
    lifecycle: ServerLifecycle
