"""Discovery of the processes bound to a TCP port.

Each platform exposes its connection table differently, so discovery is a
capability with one strategy per table format:

- ``NetstatDiscovery`` scrapes Windows ``netstat -ano`` output.
- ``LsofDiscovery`` parses ``lsof -F pn`` field output on macOS and other Unixes.
- ``PsutilDiscovery`` reads the table through ``psutil.net_connections``.

The text parsers are plain functions so they can be fed fixture output.
"""

import logging
import subprocess
import sys
from typing import Protocol

import psutil

from portreaper.models import PortBinding
from portreaper.runner import CommandResult, CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)

STRATEGIES = ("auto", "netstat", "lsof", "psutil")

# Socket states the kernel keeps after the owning process is gone
OWNERLESS_STATES = frozenset({psutil.CONN_TIME_WAIT, psutil.CONN_CLOSE})


class DiscoveryUnavailable(RuntimeError):
    """The connection table could not be queried."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class PortDiscovery(Protocol):
    """Capability: list the bindings on a local TCP port."""

    def find_bindings(self, port: int) -> list[PortBinding]: ...


def _split_address(address: str) -> tuple[str, int] | None:
    """Split 'host:port' (including '[::]:port' and '*:port') on the last colon."""
    host, sep, port_text = address.rpartition(":")
    if not sep or not port_text.isdigit():
        return None
    return host, int(port_text)


def parse_netstat_output(output: str, port: int) -> list[PortBinding]:
    """
    Parse Windows ``netstat -ano`` output into bindings on ``port``.

    Header lines, UDP rows and anything else that does not look like a TCP row
    ending in a numeric PID are skipped.

    Args:
        output: Raw netstat text.
        port: Local port to match exactly.

    Returns:
        Bindings in the order they appear in the output.
    """
    bindings: list[PortBinding] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5 or not parts[0].upper().startswith("TCP"):
            continue

        local = _split_address(parts[1])
        if local is None or local[1] != port:
            continue

        pid_text = parts[-1]
        if not pid_text.isdigit():
            continue

        bindings.append(PortBinding(local_address=local[0], local_port=port, pid=int(pid_text)))
    return bindings


def parse_lsof_output(output: str, port: int) -> list[PortBinding]:
    """
    Parse ``lsof -F pn`` field output into bindings on ``port``.

    'p' lines start a new process; 'n' lines carry 'local' or 'local->remote'.
    Connections where only the remote end uses the port are skipped.
    """
    bindings: list[PortBinding] = []
    pid: int | None = None
    for line in output.splitlines():
        if not line:
            continue
        field, value = line[0], line[1:]
        if field == "p":
            pid = int(value) if value.isdigit() else None
        elif field == "n" and pid is not None:
            local = _split_address(value.split("->", 1)[0])
            if local is not None and local[1] == port:
                bindings.append(PortBinding(local_address=local[0], local_port=port, pid=pid))
    return bindings


class CommandDiscovery:
    """
    Base for discovery strategies that shell out to a listing tool.

    Subclasses provide ``command`` and ``parse``. Return codes listed in
    ``no_match_returncodes`` mean the tool matched nothing and yield an empty
    result; any other non-zero code raises DiscoveryUnavailable.
    """

    no_match_returncodes: frozenset[int] = frozenset({1})

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner if runner is not None else SubprocessRunner()

    def command(self, port: int) -> list[str]:
        raise NotImplementedError

    def parse(self, output: str, port: int) -> list[PortBinding]:
        raise NotImplementedError

    def find_bindings(self, port: int) -> list[PortBinding]:
        """Run the listing tool and parse its output."""
        args = self.command(port)
        try:
            result = self._runner.run(args)
        except subprocess.TimeoutExpired as e:
            raise DiscoveryUnavailable(f"{args[0]} timed out after {e.timeout}s") from e
        except OSError as e:
            raise DiscoveryUnavailable(f"Could not run {args[0]}: {e}") from e

        return self._handle_result(result, port)

    def _handle_result(self, result: CommandResult, port: int) -> list[PortBinding]:
        if result.returncode == 0:
            return self.parse(result.stdout, port)

        if result.returncode in self.no_match_returncodes:
            logger.debug("%s reported no matches (exit %d)", result.args[0], result.returncode)
            return []

        stderr = result.stderr.strip()
        raise DiscoveryUnavailable(
            f"{result.args[0]} exited with code {result.returncode}: {stderr or 'no output'}",
            returncode=result.returncode,
            stderr=stderr,
        )


class NetstatDiscovery(CommandDiscovery):
    """
    Windows strategy: ``netstat -ano``.

    netstat has no "nothing matched" exit code, so every non-zero exit is a failure.
    """

    no_match_returncodes: frozenset[int] = frozenset()

    def command(self, port: int) -> list[str]:
        return ["netstat", "-ano"]

    def parse(self, output: str, port: int) -> list[PortBinding]:
        return parse_netstat_output(output, port)


class LsofDiscovery(CommandDiscovery):
    """Unix strategy: ``lsof -nP -iTCP:<port> -F pn``."""

    def command(self, port: int) -> list[str]:
        return ["lsof", "-nP", f"-iTCP:{port}", "-F", "pn"]

    def parse(self, output: str, port: int) -> list[PortBinding]:
        return parse_lsof_output(output, port)


class PsutilDiscovery:
    """Strategy reading the connection table through psutil."""

    def find_bindings(self, port: int) -> list[PortBinding]:
        """
        List TCP connections whose local port is ``port``.

        Connections without a PID belong to processes this user cannot see.
        They are logged as a warning, unless they are the only ones on the
        port, in which case the port is taken by something that cannot be
        listed. Sockets in TIME_WAIT or CLOSE have no owner and are ignored.

        Raises:
            DiscoveryUnavailable: When the table is not readable by this user,
                or when every connection on the port is hidden from it.
        """
        try:
            connections = psutil.net_connections(kind="tcp")
        except psutil.AccessDenied as e:
            raise DiscoveryUnavailable(f"Access denied reading connection table: {e}") from e
        except OSError as e:
            raise DiscoveryUnavailable(f"Could not read connection table: {e}") from e

        bindings: list[PortBinding] = []
        hidden = 0
        for conn in connections:
            if not conn.laddr or conn.laddr.port != port:
                continue
            if conn.pid is not None:
                bindings.append(PortBinding(local_address=conn.laddr.ip, local_port=port, pid=conn.pid))
            elif conn.status not in OWNERLESS_STATES:
                hidden += 1

        if hidden and not bindings:
            raise DiscoveryUnavailable(
                f"Port {port} is in use by {hidden} connection(s) owned by a process this user cannot see"
            )
        if hidden:
            logger.warning(
                "Port %d also has %d connection(s) owned by a process this user cannot see", port, hidden
            )
        return bindings


def default_discovery(
    runner: CommandRunner | None = None,
    platform: str | None = None,
) -> PortDiscovery:
    """Pick the discovery strategy for the current (or given) platform."""
    platform = platform or sys.platform
    if platform == "win32":
        return NetstatDiscovery(runner)
    if platform == "darwin":
        return LsofDiscovery(runner)
    return PsutilDiscovery()


def discovery_for(name: str, runner: CommandRunner | None = None) -> PortDiscovery:
    """Resolve a strategy name ('auto', 'netstat', 'lsof' or 'psutil')."""
    if name == "auto":
        return default_discovery(runner)
    if name == "netstat":
        return NetstatDiscovery(runner)
    if name == "lsof":
        return LsofDiscovery(runner)
    if name == "psutil":
        return PsutilDiscovery()
    raise ValueError(f"Unknown discovery strategy: {name!r} (expected one of {', '.join(STRATEGIES)})")
