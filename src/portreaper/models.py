"""Data models for portreaper."""

from dataclasses import dataclass
from enum import Enum


@dataclass(slots=True, frozen=True)
class PortBinding:
    """Immutable snapshot of a process holding a local TCP port."""

    local_address: str  # '0.0.0.0', '[::]', '127.0.0.1', ...
    local_port: int
    pid: int


class TerminationOutcome(Enum):
    """Outcome of a single forced termination."""

    TERMINATED = "terminated"
    NOT_FOUND = "not-found"
    PERMISSION_DENIED = "permission-denied"
    UNKNOWN_ERROR = "unknown-error"


@dataclass(slots=True, frozen=True)
class TerminationResult:
    """Result of terminating one PID."""

    pid: int
    outcome: TerminationOutcome
    message: str = ""

    @property
    def ok(self) -> bool:
        """True when the PID no longer holds the port."""
        return self.outcome in (TerminationOutcome.TERMINATED, TerminationOutcome.NOT_FOUND)
