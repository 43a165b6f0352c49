"""Tests for the portreaper command."""

import argparse
import logging

import pytest

from portreaper import cli
from portreaper.config import ReaperConfig
from portreaper.discovery import DiscoveryUnavailable, LsofDiscovery, PsutilDiscovery
from portreaper.models import PortBinding, TerminationOutcome
from portreaper.reaper import PortReaper
from portreaper.runner import SubprocessRunner


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, caplog):
    for name in ("PORT_REAPER_PORT", "PORT_REAPER_STRATEGY", "PORT_REAPER_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)
    caplog.set_level(logging.INFO, logger="portreaper")


@pytest.fixture
def wire(monkeypatch):
    """Make main() use the given strategies and remember the config it built."""
    seen: list[ReaperConfig] = []

    def install(discovery, terminator):
        def build(config):
            seen.append(config)
            return PortReaper(discovery, terminator)

        monkeypatch.setattr(cli, "build_reaper", build)
        return seen

    return install


class TestArgumentTypes:
    """Tests for argparse type helpers."""

    def test_port_type(self):
        """Test ports are parsed and range-checked."""
        assert cli.port_type("5000") == 5000
        with pytest.raises(argparse.ArgumentTypeError):
            cli.port_type("0")
        with pytest.raises(argparse.ArgumentTypeError):
            cli.port_type("http")

    def test_positive_float(self):
        """Test timeouts must be positive numbers."""
        assert cli.positive_float("1.5") == 1.5
        with pytest.raises(argparse.ArgumentTypeError):
            cli.positive_float("0")
        with pytest.raises(argparse.ArgumentTypeError):
            cli.positive_float("x")


class TestMain:
    """Tests for cli.main."""

    def test_default_port_is_5000(self, wire, fake_discovery, fake_terminator, caplog):
        """Test the default port and the empty-port message."""
        discovery = fake_discovery()
        seen = wire(discovery, fake_terminator())

        assert cli.main([]) == 0
        assert seen[0].port == 5000
        assert discovery.ports == [5000]
        assert "No active process on port 5000." in caplog.messages

    def test_port_from_environment(self, wire, fake_discovery, fake_terminator, monkeypatch):
        """Test PORT_REAPER_PORT sets the port."""
        monkeypatch.setenv("PORT_REAPER_PORT", "8000")
        discovery = fake_discovery()
        wire(discovery, fake_terminator())

        cli.main([])

        assert discovery.ports == [8000]

    def test_flags_override_environment(self, wire, fake_discovery, fake_terminator, monkeypatch):
        """Test command-line values win over the environment."""
        monkeypatch.setenv("PORT_REAPER_PORT", "8000")
        monkeypatch.setenv("PORT_REAPER_STRATEGY", "lsof")
        seen = wire(fake_discovery(), fake_terminator())

        cli.main(["3000", "--strategy", "psutil", "--timeout", "4"])

        assert seen[0].port == 3000
        assert seen[0].strategy == "psutil"
        assert seen[0].timeout == 4.0

    def test_kills_and_reports_free(self, wire, fake_discovery, fake_terminator, caplog):
        """Test a successful reap exits 0 and says the port is free."""
        terminator = fake_terminator()
        wire(fake_discovery([PortBinding("0.0.0.0", 5000, 1234)]), terminator)

        assert cli.main(["5000"]) == 0
        assert terminator.killed == [1234]
        assert "Port 5000 is free." in caplog.messages

    def test_already_gone_exits_zero(self, wire, fake_discovery, fake_terminator):
        """Test a PID that vanished is not a failure."""
        wire(
            fake_discovery([PortBinding("0.0.0.0", 5000, 5678)]),
            fake_terminator({5678: TerminationOutcome.NOT_FOUND}),
        )

        assert cli.main(["5000"]) == 0

    def test_survivors_warned_but_exit_zero(self, wire, fake_discovery, fake_terminator, caplog):
        """Test a PID that could not be killed is reported without failing the run."""
        wire(
            fake_discovery([PortBinding("0.0.0.0", 5000, 4)]),
            fake_terminator({4: TerminationOutcome.PERMISSION_DENIED}),
        )

        assert cli.main(["5000"]) == 0
        assert "Port 5000 may still be in use by PID(s): 4" in caplog.messages

    def test_discovery_failure_exits_one(self, wire, fake_discovery, fake_terminator, caplog):
        """Test a failed listing exits 1 and kills nothing."""
        terminator = fake_terminator()
        wire(fake_discovery(error=DiscoveryUnavailable("netstat exited with code 5")), terminator)

        assert cli.main(["5000"]) == 1
        assert terminator.killed == []
        assert "Error finding process: netstat exited with code 5" in caplog.messages

    def test_invalid_port_exits_two(self):
        """Test argparse rejects a bad port."""
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["99999"])
        assert excinfo.value.code == 2

    def test_invalid_environment_exits_two(self, monkeypatch):
        """Test a bad environment variable is a usage error."""
        monkeypatch.setenv("PORT_REAPER_TIMEOUT", "never")
        with pytest.raises(SystemExit) as excinfo:
            cli.main([])
        assert excinfo.value.code == 2

    def test_interactive_runs_app(self, wire, fake_discovery, fake_terminator, monkeypatch):
        """Test --interactive opens the console on the configured port."""
        launched = []

        class FakeApp:
            def __init__(self, reaper, port):
                launched.append(port)

            def run(self):
                launched.append("ran")

        monkeypatch.setattr("portreaper.app.ReaperApp", FakeApp)
        terminator = fake_terminator()
        wire(fake_discovery([PortBinding("0.0.0.0", 7000, 1)]), terminator)

        assert cli.main(["7000", "--interactive"]) == 0
        assert launched == [7000, "ran"]
        assert terminator.killed == []


class TestBuildReaper:
    """Tests for wiring strategies from config."""

    def test_named_strategy(self):
        """Test the strategy name picks the discovery class."""
        reaper = cli.build_reaper(ReaperConfig(strategy="lsof"))
        assert isinstance(reaper.discovery, LsofDiscovery)

    def test_psutil_strategy(self):
        """Test psutil discovery needs no runner."""
        assert isinstance(cli.build_reaper(ReaperConfig(strategy="psutil")).discovery, PsutilDiscovery)

    def test_timeout_reaches_runner(self):
        """Test the timeout bounds the command runner."""
        reaper = cli.build_reaper(ReaperConfig(strategy="lsof", timeout=7.0))
        assert isinstance(reaper.discovery._runner, SubprocessRunner)
        assert reaper.discovery._runner.timeout == 7.0
