"""
Command line entrypoint.

    courtwatch once            один прогон (по умолчанию)
    courtwatch watch           циклический мониторинг
    courtwatch probe-proxies   проверить все прокси и выйти
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from .config import Settings, get_settings
from .monitor import Monitor, MonitorService
from .proxy import ProxySelector, format_probes
from .utils import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="courtwatch", description="Court slot availability monitor")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("once", help="run the pipeline once")
    watch = sub.add_parser("watch", help="run continuously with a jittered interval")
    watch.add_argument("--max-runs", type=int, default=None, help="stop after N runs")
    sub.add_parser("probe-proxies", help="probe every configured proxy and print the results")
    return parser


async def _run_once(settings: Settings) -> int:
    monitor = Monitor.from_settings(settings)
    try:
        outcome = await monitor.run_once()
    finally:
        await monitor.close()
    return 0 if outcome.ok else 1


async def _watch(settings: Settings, max_runs: Optional[int]) -> int:
    monitor = Monitor.from_settings(settings)
    service = MonitorService(monitor)
    try:
        await service.run_forever(max_runs=max_runs)
    finally:
        service.stop()
        await monitor.close()
    return 0


async def _probe(settings: Settings) -> int:
    selector = ProxySelector.from_config(settings.proxy)
    probes = await selector.probe_all()
    print(format_probes(probes))
    if probes and not any(p.reachable for p in probes):
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for running the monitor."""
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except (ValidationError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    setup_logging(settings.logging)

    command = args.command or "once"
    logger.info("Starting courtwatch %s", command)
    try:
        if command == "watch":
            return asyncio.run(_watch(settings, args.max_runs))
        if command == "probe-proxies":
            return asyncio.run(_probe(settings))
        return asyncio.run(_run_once(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
