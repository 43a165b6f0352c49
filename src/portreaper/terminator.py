"""Forced termination of a single process."""

import subprocess
import sys
from typing import Protocol

import psutil

from portreaper.models import TerminationOutcome, TerminationResult
from portreaper.runner import CommandRunner, SubprocessRunner

# taskkill exit code when the target PID does not exist
TASKKILL_NOT_FOUND = 128


class Terminator(Protocol):
    """Capability: forcibly terminate a PID and report the outcome without raising."""

    def terminate(self, pid: int) -> TerminationResult: ...


class PsutilTerminator:
    """
    Terminator that kills processes with psutil.

    Sends SIGKILL (TerminateProcess on Windows) and waits for the process to go
    away. Handles NoSuchProcess, AccessDenied and ZombieProcess.
    """

    def __init__(self, wait_timeout: float | None = 3.0) -> None:
        """
        Initialize the PsutilTerminator.

        Args:
            wait_timeout: Seconds to wait for the process to exit after the kill.
                None skips the wait.
        """
        self._wait_timeout = wait_timeout

    def terminate(self, pid: int) -> TerminationResult:
        """Kill ``pid`` and report what happened."""
        try:
            proc = psutil.Process(pid)
            proc.kill()
            if self._wait_timeout is not None:
                self._wait(proc)
        except psutil.ZombieProcess:
            return TerminationResult(pid, TerminationOutcome.TERMINATED, "zombie")
        except psutil.NoSuchProcess as e:
            return TerminationResult(pid, TerminationOutcome.NOT_FOUND, str(e))
        except psutil.AccessDenied as e:
            return TerminationResult(pid, TerminationOutcome.PERMISSION_DENIED, str(e))
        except psutil.TimeoutExpired:
            return TerminationResult(
                pid,
                TerminationOutcome.UNKNOWN_ERROR,
                f"still running {self._wait_timeout}s after kill",
            )
        except (psutil.Error, OSError) as e:
            return TerminationResult(pid, TerminationOutcome.UNKNOWN_ERROR, str(e))

        return TerminationResult(pid, TerminationOutcome.TERMINATED)

    def _wait(self, proc: psutil.Process) -> None:
        try:
            proc.wait(timeout=self._wait_timeout)
        except psutil.TimeoutExpired:
            # A zombie that is not our child never disappears from the table
            try:
                status = proc.status()
            except psutil.NoSuchProcess:
                return
            if status != psutil.STATUS_ZOMBIE:
                raise


class TaskkillTerminator:
    """Windows terminator running ``taskkill /F /PID <pid>``."""

    def __init__(self, runner: CommandRunner | None = None) -> None:
        self._runner = runner if runner is not None else SubprocessRunner()

    def terminate(self, pid: int) -> TerminationResult:
        """Run taskkill and classify its exit code and output."""
        try:
            result = self._runner.run(["taskkill", "/F", "/PID", str(pid)])
        except subprocess.TimeoutExpired as e:
            return TerminationResult(
                pid, TerminationOutcome.UNKNOWN_ERROR, f"taskkill timed out after {e.timeout}s"
            )
        except OSError as e:
            return TerminationResult(pid, TerminationOutcome.UNKNOWN_ERROR, str(e))

        if result.returncode == 0:
            return TerminationResult(pid, TerminationOutcome.TERMINATED)

        message = (result.stderr.strip() or result.stdout.strip()) or f"exit code {result.returncode}"
        lowered = message.lower()
        if result.returncode == TASKKILL_NOT_FOUND or "not found" in lowered:
            return TerminationResult(pid, TerminationOutcome.NOT_FOUND, message)
        if "access is denied" in lowered:
            return TerminationResult(pid, TerminationOutcome.PERMISSION_DENIED, message)
        return TerminationResult(pid, TerminationOutcome.UNKNOWN_ERROR, message)


def default_terminator(
    runner: CommandRunner | None = None,
    platform: str | None = None,
    wait_timeout: float | None = 3.0,
) -> Terminator:
    """Pick the terminator for the current (or given) platform."""
    platform = platform or sys.platform
    if platform == "win32":
        return TaskkillTerminator(runner)
    return PsutilTerminator(wait_timeout=wait_timeout)
