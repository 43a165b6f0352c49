"""Command execution for the OS collaborators."""

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Captured result of an external command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str


class CommandRunner(Protocol):
    """Anything that can run a command and capture its output."""

    def run(self, args: Sequence[str]) -> CommandResult: ...


class SubprocessRunner:
    """
    Run commands with subprocess and capture their output.

    Return codes are never interpreted here. OSError (missing tool) and
    subprocess.TimeoutExpired propagate to the caller.
    """

    def __init__(self, timeout: float | None = None) -> None:
        """
        Initialize the SubprocessRunner.

        Args:
            timeout: Seconds to wait for each command. None waits forever.
        """
        self._timeout = timeout

    @property
    def timeout(self) -> float | None:
        """Get the per-command timeout."""
        return self._timeout

    def run(self, args: Sequence[str]) -> CommandResult:
        """Run a command and return its captured result."""
        logger.debug("Running %s", " ".join(args))
        completed = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            check=False,
            timeout=self._timeout,
        )
        return CommandResult(
            args=tuple(args),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
