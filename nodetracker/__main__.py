"""Node tracker process entry-point.

Usage:
    python -m nodetracker [--node-url URL ...] [--pick N] [--top N]
                          [--max-latency MS] [--check URL] [--abort-after S]
                          [--no-websocket]

One run discovers the network's nodes (or warm-starts from the cache file),
probes them all, and prints the REST gateway URL of each picked node on
stdout.  Progress and diagnostics go to the log on stderr, so the output can
be piped straight into another tool.

Exit status is 1 on a configuration or discovery error, or when no node
qualifies.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import math
import sys

from pydantic import ValidationError

from nodetracker.core import configure_logging
from nodetracker.core.exceptions import CacheError, ConfigError, DiscoveryError
from nodetracker.core.models import ProgressEvent
from nodetracker.core.settings import Settings

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodetracker",
        description="Discover, probe, and pick healthy gateway nodes.",
    )
    parser.add_argument(
        "--node-url",
        action="append",
        default=None,
        metavar="URL",
        help="Only track this REST gateway URL (repeatable).",
    )
    parser.add_argument(
        "--pick",
        type=int,
        default=1,
        metavar="N",
        help="Number of nodes to print (default: 1).",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=None,
        metavar="N",
        help="Pick among the N fastest nodes only (default: all).",
    )
    parser.add_argument(
        "--max-latency",
        type=float,
        default=math.inf,
        metavar="MS",
        help="Ignore nodes slower than MS milliseconds.",
    )
    parser.add_argument(
        "--check",
        default=None,
        metavar="URL",
        help="Health-check a single registered node instead of sweeping.",
    )
    parser.add_argument(
        "--abort-after",
        type=float,
        default=None,
        metavar="S",
        help="Abort the sweep after S seconds and pick from what was reached.",
    )
    parser.add_argument(
        "--no-websocket",
        action="store_true",
        help="Skip the WebSocket greeting challenge (latency call only).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )
    return parser


def _log_progress(event: ProgressEvent) -> None:
    logger.info("%d of %d: %s", event.index, event.total, event.node)


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Execute one tracker run and return the process exit status."""
    # Lazy import keeps startup fast when module is imported without running.
    from nodetracker.storage import read_cache, write_cache  # noqa: PLC0415
    from nodetracker.tracker import NodeTracker  # noqa: PLC0415

    cache_path = settings.cache_path_resolved
    cached = None
    if cache_path is not None and not args.node_url:
        try:
            cached = read_cache(cache_path, settings.cache_max_age)
        except CacheError as exc:
            logger.warning("Ignoring node cache: %s", exc)

    options: dict = {}
    if args.no_websocket:
        options["no_websocket_challenge"] = True
    if cached is not None:
        options["cached_nodes"], options["cache_timestamp"] = cached

    async with NodeTracker.from_settings(settings, **options) as tracker:
        if not tracker.available_nodes:
            nodes = await tracker.discovery(args.node_url)
            if cache_path is not None and not args.node_url:
                write_cache(cache_path, nodes, tracker.discovered_at)

        unsubscribe = tracker.progress.subscribe(_log_progress)
        try:
            if args.check:
                node = await tracker.check_health(args.check, args.max_latency)
                if node is None:
                    logger.error("Node %s is not usable.", args.check)
                    return 1
                print(node.control_url)  # noqa: T201
                return 0

            abort_handle = None
            if args.abort_after is not None:
                loop = asyncio.get_running_loop()
                abort_handle = loop.call_later(args.abort_after, tracker.abort_pinging)
            try:
                await tracker.ping_all()
            finally:
                if abort_handle is not None:
                    abort_handle.cancel()
        finally:
            unsubscribe()

        picked = tracker.pick_multi(args.pick, args.top, args.max_latency)
        if not picked:
            logger.error("No node qualifies.")
            return 1
        for node in picked:
            print(node.control_url)  # noqa: T201
    return 0


def main() -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    args = _build_parser().parse_args()

    # Configure logging BEFORE building the tracker so every module logs
    # through the configured handler.
    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"nodetracker: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    try:
        settings = Settings()
    except ValidationError as exc:
        logger.critical("Invalid settings: %s", exc)
        sys.exit(1)

    try:
        status = asyncio.run(run(args, settings))
    except ConfigError as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except DiscoveryError as exc:
        logger.critical("Discovery failed: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted — exiting.")
        sys.exit(0)
    sys.exit(status)


if __name__ == "__main__":
    main()
