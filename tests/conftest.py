"""Shared fakes for the OS collaborators."""

from collections.abc import Sequence

import pytest

from portreaper.models import PortBinding, TerminationOutcome, TerminationResult
from portreaper.runner import CommandResult


class FakeRunner:
    """CommandRunner returning canned results and recording every call."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "", error: Exception | None = None):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.error = error
        self.calls: list[tuple[str, ...]] = []

    def run(self, args: Sequence[str]) -> CommandResult:
        self.calls.append(tuple(args))
        if self.error is not None:
            raise self.error
        return CommandResult(tuple(args), self.returncode, self.stdout, self.stderr)


class FakeDiscovery:
    """PortDiscovery returning fixed bindings, or raising."""

    def __init__(self, bindings: list[PortBinding] | None = None, error: Exception | None = None):
        self.bindings = bindings or []
        self.error = error
        self.ports: list[int] = []

    def find_bindings(self, port: int) -> list[PortBinding]:
        self.ports.append(port)
        if self.error is not None:
            raise self.error
        return list(self.bindings)


class FakeTerminator:
    """Terminator recording PIDs; outcomes default to TERMINATED."""

    def __init__(self, outcomes: dict[int, TerminationOutcome] | None = None):
        self.outcomes = outcomes or {}
        self.killed: list[int] = []

    def terminate(self, pid: int) -> TerminationResult:
        self.killed.append(pid)
        outcome = self.outcomes.get(pid, TerminationOutcome.TERMINATED)
        message = "" if outcome is TerminationOutcome.TERMINATED else f"{outcome.value} for {pid}"
        return TerminationResult(pid, outcome, message)


@pytest.fixture
def fake_runner():
    """Factory for FakeRunner."""
    return FakeRunner


@pytest.fixture
def fake_discovery():
    """Factory for FakeDiscovery."""
    return FakeDiscovery


@pytest.fixture
def fake_terminator():
    """Factory for FakeTerminator."""
    return FakeTerminator
