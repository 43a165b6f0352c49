"""Port reaper: free a TCP port by killing whatever is bound to it."""

import logging
import os
from collections.abc import Iterable

from portreaper.discovery import PortDiscovery, default_discovery
from portreaper.models import PortBinding, TerminationOutcome, TerminationResult
from portreaper.terminator import Terminator, default_terminator

logger = logging.getLogger(__name__)

MIN_PORT = 1
MAX_PORT = 65535


def validate_port(port: int) -> int:
    """Return ``port`` if it is a valid TCP port, else raise ValueError."""
    if isinstance(port, bool) or not isinstance(port, int) or not MIN_PORT <= port <= MAX_PORT:
        raise ValueError(f"Port must be an integer between {MIN_PORT} and {MAX_PORT}, got {port!r}")
    return port


def select_pids(bindings: Iterable[PortBinding], exclude: Iterable[int] = ()) -> list[int]:
    """
    Reduce bindings to the distinct PIDs worth killing.

    PID 0 (system placeholder) and anything in ``exclude`` are dropped.
    First-seen order is kept.
    """
    skipped = {0, *exclude}
    pids: list[int] = []
    for binding in bindings:
        if binding.pid in skipped or binding.pid in pids:
            continue
        pids.append(binding.pid)
    return pids


def all_freed(results: Iterable[TerminationResult]) -> bool:
    """True when no PID from the results is still holding the port."""
    return all(result.ok for result in results)


class PortReaper:
    """
    Discover-then-terminate pipeline for a single port.

    Per-PID failures become TerminationResult records and never stop the
    remaining PIDs. Only DiscoveryUnavailable escapes ``reap``.
    """

    def __init__(
        self,
        discovery: PortDiscovery | None = None,
        terminator: Terminator | None = None,
        exclude_self: bool = True,
    ) -> None:
        """
        Initialize the PortReaper.

        Args:
            discovery: Strategy listing the bindings on a port. Defaults to the
                platform's strategy.
            terminator: Strategy killing a PID. Defaults to the platform's one.
            exclude_self: Never kill the current Python process.
        """
        self._discovery = discovery if discovery is not None else default_discovery()
        self._terminator = terminator if terminator is not None else default_terminator()
        self._exclude = (os.getpid(),) if exclude_self else ()

    @property
    def discovery(self) -> PortDiscovery:
        """Get the strategy listing the bindings on a port."""
        return self._discovery

    @property
    def terminator(self) -> Terminator:
        """Get the strategy killing a PID."""
        return self._terminator

    def find_pids(self, port: int) -> list[int]:
        """List the distinct killable PIDs bound to ``port``."""
        validate_port(port)
        return select_pids(self._discovery.find_bindings(port), self._exclude)

    def reap(self, port: int) -> list[TerminationResult]:
        """
        Kill every process bound to ``port``.

        Args:
            port: TCP port to free (1-65535).

        Returns:
            One result per distinct PID, in discovery order. Empty when nothing
            was bound to the port.

        Raises:
            ValueError: If ``port`` is not a valid TCP port.
            DiscoveryUnavailable: If the connection table could not be queried.
        """
        pids = self.find_pids(port)
        if not pids:
            logger.info("No active process on port %d.", port)
            return []

        results: list[TerminationResult] = []
        for pid in pids:
            logger.info("Killing PID %d...", pid)
            result = self._terminate(pid)
            _report(result)
            results.append(result)
        return results

    def _terminate(self, pid: int) -> TerminationResult:
        try:
            return self._terminator.terminate(pid)
        except Exception as e:
            # Terminators should not raise; keep going with the other PIDs anyway
            logger.debug("Terminator raised for PID %d", pid, exc_info=True)
            return TerminationResult(pid, TerminationOutcome.UNKNOWN_ERROR, str(e))


def _report(result: TerminationResult) -> None:
    if result.outcome is TerminationOutcome.TERMINATED:
        logger.info("Successfully killed %d.", result.pid)
    elif result.outcome is TerminationOutcome.NOT_FOUND:
        logger.info("PID %d not found (already exited).", result.pid)
    elif result.outcome is TerminationOutcome.PERMISSION_DENIED:
        logger.warning("Could not kill %d: permission denied: %s", result.pid, result.message)
    else:
        logger.warning("Could not kill %d: %s", result.pid, result.message)


def reap_port(
    port: int,
    *,
    discovery: PortDiscovery | None = None,
    terminator: Terminator | None = None,
) -> list[TerminationResult]:
    """Kill every process bound to ``port`` using the given (or platform) strategies."""
    return PortReaper(discovery, terminator).reap(port)
