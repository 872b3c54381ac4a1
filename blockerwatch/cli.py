#!/usr/bin/env python3
"""CLI tool for watching and controlling Pi-hole / AdGuard Home appliances"""

import argparse
import dataclasses
import json
import logging
import signal
import sys
import threading
from typing import Any, Dict, List, Optional

from blockerwatch import __version__
from blockerwatch.config import MonitorSettings
from blockerwatch.integrations.base import DnsBlockerHandler
from blockerwatch.integrations.models import BlockingState, BlockingStatus, NormalizedStats
from blockerwatch.scheduler import (
    LivenessSnapshot,
    PollScheduler,
    StatusSnapshot,
    TopBlockedSnapshot,
    TrendSnapshot,
    default_handler_factory,
)
from blockerwatch.sinks import CallbackSink

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    # Keep httpx request lines out of INFO output
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def load_settings(args) -> MonitorSettings:
    settings = MonitorSettings.from_yaml(args.config)
    if not settings.connections:
        logger.error(f"No appliance configured (dns1/dns2) in {args.config}")
        sys.exit(1)
    return settings


def open_handlers(settings: MonitorSettings) -> List[DnsBlockerHandler]:
    return [default_handler_factory(c, settings) for c in settings.connections if c.has_valid_address()]


def format_snapshot(job: str, snapshot: Any) -> str:
    """One console line per published snapshot"""
    if isinstance(snapshot, StatusSnapshot):
        if not snapshot.active:
            return "[status] inactive"
        return (
            f"[status] total={snapshot.total_queries} blocked={snapshot.blocked_queries} "
            f"accepted={snapshot.accepted_queries} ({snapshot.percent_blocked:.1f}%) "
            f"blocklist={snapshot.blocklist_size}"
        )
    if isinstance(snapshot, TrendSnapshot):
        return f"[fluid] {snapshot.percent_blocked:.1f}% blocked, {snapshot.gravity_text}"
    if isinstance(snapshot, LivenessSnapshot):
        version = snapshot.version or "N/A"
        return f"[active] {snapshot.description} (API version: {version})"
    if isinstance(snapshot, TopBlockedSnapshot):
        items = ", ".join(f"{d.domain} ({d.count})" for d in snapshot.domains)
        return f"[top_x] {items or 'none'}"
    return f"[{job}] {snapshot!r}"


def stats_document(stats: NormalizedStats, status: Optional[BlockingStatus]) -> Dict[str, Any]:
    if status is not None:
        stats = dataclasses.replace(stats, status=BlockingState.from_enabled(status.enabled))
    return stats.to_dict()


def run_watch(args):
    """Poll until interrupted, printing each snapshot"""
    settings = load_settings(args)
    sink = CallbackSink(lambda job, snapshot: print(format_snapshot(job, snapshot), flush=True))
    scheduler = PollScheduler(settings, sink)

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    scheduler.start()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        scheduler.shutdown()


def run_stats(args):
    """Print the unified stats document of every appliance"""
    settings = load_settings(args)
    documents = []
    for handler in open_handlers(settings):
        try:
            stats = handler.get_stats()
            status = handler.get_dns_blocking_status()
        finally:
            handler.close()
        if stats is None:
            logger.warning(f"{handler!r}: no stats")
            continue
        documents.append(stats_document(stats, status))
    print(json.dumps(documents, indent=2))
    if not documents:
        sys.exit(2)


def run_top(args):
    """Print the most blocked domains of every appliance"""
    settings = load_settings(args)
    count = args.count or settings.top_x
    for handler in open_handlers(settings):
        try:
            top = handler.get_top_blocked(count)
        finally:
            handler.close()
        if top is None:
            logger.warning(f"{handler!r}: no top blocked domains")
            continue
        print(json.dumps(top.to_dict(), indent=2))


def run_blocking(args):
    """Enable, disable or toggle DNS blocking on every appliance"""
    settings = load_settings(args)
    scheduler = PollScheduler(settings, CallbackSink(lambda job, snapshot: None))
    try:
        if args.action == "toggle":
            target = scheduler.toggle_blocking(args.timer)
            if target is None:
                sys.exit(2)
            print(f"Blocking {'enabled' if target else 'disabled'}")
            return

        enabled = args.action == "enable"
        results = scheduler.set_blocking(enabled, args.timer)
        failed = [address for address, result in results.items() if result is None]
        for address in results:
            state = "FAILED" if address in failed else ("enabled" if enabled else "disabled")
            print(f"{address}: {state}")
        if failed:
            sys.exit(2)
    finally:
        scheduler.shutdown(grace_seconds=0)


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="blockerwatch - Pi-hole / AdGuard Home monitor CLI"
    )
    parser.add_argument("--config", "-f", default="config.yaml", help="Path to the YAML configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    watch_parser = subparsers.add_parser("watch", help="Poll the appliances and print updates")
    watch_parser.set_defaults(func=run_watch)

    stats_parser = subparsers.add_parser("stats", help="Print current stats as JSON")
    stats_parser.set_defaults(func=run_stats)

    top_parser = subparsers.add_parser("top", help="Print the most blocked domains")
    top_parser.add_argument("--count", "-n", type=int, help="Number of domains (default: top_x setting)")
    top_parser.set_defaults(func=run_top)

    blocking_parser = subparsers.add_parser("blocking", help="Change DNS blocking")
    blocking_parser.add_argument("action", choices=["enable", "disable", "toggle"])
    blocking_parser.add_argument("--timer", "-t", type=int, help="Seconds until Pi-hole reverts (ignored by AdGuard Home)")
    blocking_parser.set_defaults(func=run_blocking)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
