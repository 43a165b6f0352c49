"""portreaper - command-line entry point."""

import argparse
import logging
import sys

from portreaper.config import ReaperConfig
from portreaper.discovery import STRATEGIES, DiscoveryUnavailable, discovery_for
from portreaper.reaper import MAX_PORT, MIN_PORT, PortReaper
from portreaper.runner import SubprocessRunner
from portreaper.terminator import default_terminator

logger = logging.getLogger("portreaper")


def port_type(value: str) -> int:
    """argparse type for a TCP port."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a port number: {value!r}") from None
    if not MIN_PORT <= port <= MAX_PORT:
        raise argparse.ArgumentTypeError(f"port must be between {MIN_PORT} and {MAX_PORT}")
    return port


def positive_float(value: str) -> float:
    """argparse type for a positive number of seconds."""
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError("must be positive")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portreaper",
        description="Kill every process bound to a local TCP port.",
    )
    parser.add_argument(
        "port",
        nargs="?",
        type=port_type,
        help="TCP port to free (default: $PORT_REAPER_PORT or 5000)",
    )
    parser.add_argument(
        "--strategy",
        choices=STRATEGIES,
        help="How to list the processes on the port (default: auto)",
    )
    parser.add_argument(
        "--timeout",
        type=positive_float,
        help="Seconds to wait on each OS call",
    )
    parser.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        help="Open the interactive console instead of reaping right away",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug output")
    return parser


def resolve_config(args: argparse.Namespace, parser: argparse.ArgumentParser) -> ReaperConfig:
    """Merge the environment config with command-line overrides."""
    try:
        config = ReaperConfig.from_env()
    except ValueError as e:
        parser.error(str(e))
    if args.port is not None:
        config.port = args.port
    if args.strategy is not None:
        config.strategy = args.strategy
    if args.timeout is not None:
        config.timeout = args.timeout
    return config


def build_reaper(config: ReaperConfig) -> PortReaper:
    """Wire the strategies named by ``config`` into a PortReaper."""
    runner = SubprocessRunner(timeout=config.timeout)
    discovery = discovery_for(config.strategy, runner)
    wait_timeout = config.timeout if config.timeout is not None else 3.0
    terminator = default_terminator(runner, wait_timeout=wait_timeout)
    return PortReaper(discovery, terminator)


def main(argv: list[str] | None = None) -> int:
    """
    Entry point for the portreaper command.

    Returns:
        0 when the run completed (including nothing to kill or PIDs already
        gone), 1 when the processes on the port could not be listed.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stdout,
    )

    config = resolve_config(args, parser)
    reaper = build_reaper(config)

    if args.interactive:
        from portreaper.app import ReaperApp

        ReaperApp(reaper, config.port).run()
        return 0

    try:
        results = reaper.reap(config.port)
    except DiscoveryUnavailable as e:
        logger.error("Error finding process: %s", e)
        return 1

    survivors = [result.pid for result in results if not result.ok]
    if survivors:
        logger.warning("Port %d may still be in use by PID(s): %s", config.port, ", ".join(map(str, survivors)))
    elif results:
        logger.info("Port %d is free.", config.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
