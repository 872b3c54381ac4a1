"""Periodic polling of the configured appliances using APScheduler.

Four independent interval jobs (status, fluid, active, top_x) each call one
handler method per appliance and publish a fresh snapshot to the display
sink. The handlers are held in an immutable ``PollContext`` that
``reconfigure`` replaces as a whole.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List, Callable, Tuple

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from blockerwatch.config import ConnectionConfig, MonitorSettings
from blockerwatch.integrations.base import DnsBlockerHandler
from blockerwatch.integrations.factory import create_handler
from blockerwatch.integrations.models import (
    BlockedDomain,
    NormalizedStats,
    TrendInfo,
    percent_of,
    top_domains,
)
from blockerwatch.sinks import DisplaySink
from blockerwatch.utils.http_client import HttpClient

logger = logging.getLogger(__name__)

# Threads for housekeeping jobs; each polling job gets its own pool
WORKER_THREADS = 4
# Slow ticks may overlap the next one instead of being skipped
MAX_OVERLAPPING_TICKS = 3
JOB_NAMES = ("status", "fluid", "active", "top_x")
NO_ACTIVE_APPLIANCE = "No active appliance"

HandlerFactory = Callable[[ConnectionConfig, MonitorSettings], DnsBlockerHandler]


def default_handler_factory(config: ConnectionConfig, settings: MonitorSettings) -> DnsBlockerHandler:
    """One handler with its own HTTP client per appliance"""
    http_client = HttpClient(
        connect_timeout=settings.http.connect_timeout,
        request_timeout=settings.http.request_timeout,
        verify_ssl=settings.http.verify_ssl,
    )
    return create_handler(config, http_client=http_client, field_map=settings.pihole_fields)


# ----------------------------------------------------------------------
# Snapshots
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class StatusSnapshot:
    """Query counters summed over the reachable appliances"""
    active: bool
    total_queries: int = 0
    blocked_queries: int = 0
    accepted_queries: int = 0
    percent_blocked: float = 0.0
    blocklist_size: int = 0
    appliances: Tuple[NormalizedStats, ...] = ()


@dataclass(frozen=True)
class TrendSnapshot:
    percent_blocked: float
    gravity_text: str
    appliances: Tuple[TrendInfo, ...] = ()


@dataclass(frozen=True)
class ApplianceLiveness:
    source: str
    address: str
    reachable: bool
    version: str = ""


@dataclass(frozen=True)
class LivenessSnapshot:
    """At least one reachable appliance means the whole setup is active"""
    appliances: Tuple[ApplianceLiveness, ...] = ()

    @property
    def active(self) -> bool:
        return any(a.reachable for a in self.appliances)

    @property
    def addresses(self) -> str:
        return ", ".join(a.address for a in self.appliances if a.reachable)

    @property
    def description(self) -> str:
        return self.addresses if self.active else NO_ACTIVE_APPLIANCE

    @property
    def version(self) -> str:
        for appliance in self.appliances:
            if appliance.reachable and appliance.version:
                return appliance.version
        return ""


@dataclass(frozen=True)
class TopBlockedSnapshot:
    domains: Tuple[BlockedDomain, ...] = ()
    sources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PollContext:
    """Everything a tick needs, swapped atomically on reconfigure"""
    handlers: Tuple[DnsBlockerHandler, ...] = ()
    top_x: int = 5


@dataclass(frozen=True)
class PeriodicJob:
    name: str
    period: int
    func: Callable[[PollContext], Optional[Any]]


# ----------------------------------------------------------------------
# Pure merge helpers
# ----------------------------------------------------------------------

def combine_stats(results: List[Optional[NormalizedStats]]) -> StatusSnapshot:
    stats = tuple(s for s in results if s is not None)
    if not stats:
        return StatusSnapshot(active=False)
    total = sum(s.total_queries for s in stats)
    blocked = sum(s.blocked_queries for s in stats)
    return StatusSnapshot(
        active=True,
        total_queries=total,
        blocked_queries=blocked,
        accepted_queries=max(0, total - blocked),
        percent_blocked=percent_of(blocked, total),
        blocklist_size=max(s.blocklist_size for s in stats),
        appliances=stats,
    )


def combine_trends(results: List[Optional[TrendInfo]]) -> Optional[TrendSnapshot]:
    trends = tuple(t for t in results if t is not None)
    if not trends:
        return None
    percent = sum(t.percent_blocked for t in trends) / len(trends)
    return TrendSnapshot(
        percent_blocked=min(100.0, max(0.0, percent)),
        gravity_text=trends[0].gravity_text,
        appliances=trends,
    )


def merge_top_blocked(results: List[Any], count: int) -> Optional[TopBlockedSnapshot]:
    """Add hit counts of the same domain across appliances; first appearance breaks ties"""
    lists = [r for r in results if r is not None]
    if not lists:
        return None
    totals: Dict[str, int] = {}
    for top in lists:
        for entry in top.domains:
            totals[entry.domain] = totals.get(entry.domain, 0) + entry.count
    merged = [BlockedDomain(domain=d, count=c) for d, c in totals.items()]
    return TopBlockedSnapshot(
        domains=top_domains(merged, count),
        sources=tuple(top.source for top in lists),
    )


class PollScheduler:
    """Runs the polling jobs and publishes their snapshots to a sink"""

    def __init__(
        self,
        settings: MonitorSettings,
        sink: DisplaySink,
        handler_factory: Optional[HandlerFactory] = None,
    ):
        self.settings = settings
        self.sink = sink
        self.handler_factory = handler_factory or default_handler_factory

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._in_flight = 0
        self._shut_down = False
        # Replaced handlers waiting for their delayed close
        self._retired: List[DnsBlockerHandler] = []

        # A hung appliance can only tie up the pool of the job calling it
        executors = {name: ThreadPoolExecutor(MAX_OVERLAPPING_TICKS) for name in JOB_NAMES}
        executors["default"] = ThreadPoolExecutor(WORKER_THREADS)
        self._scheduler = BackgroundScheduler(
            executors=executors,
            job_defaults={"coalesce": True, "max_instances": MAX_OVERLAPPING_TICKS},
        )
        self._context = PollContext(handlers=self._build_handlers(settings), top_x=settings.top_x)
        self.jobs = self._build_jobs(settings)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _build_handlers(self, settings: MonitorSettings) -> Tuple[DnsBlockerHandler, ...]:
        handlers = []
        for config in settings.connections:
            if not config.has_valid_address():
                logger.warning(f"Skipping {config.platform.display_name} connection without a host")
                continue
            handlers.append(self.handler_factory(config, settings))
        return tuple(handlers)

    def _build_jobs(self, settings: MonitorSettings) -> Dict[str, PeriodicJob]:
        refresh = settings.refresh
        status, fluid, active, top_x = JOB_NAMES
        jobs = [
            PeriodicJob(status, refresh.status, self.poll_status),
            PeriodicJob(fluid, refresh.fluid, self.poll_trend),
            PeriodicJob(active, refresh.active, self.poll_liveness),
            PeriodicJob(top_x, refresh.top_x, self.poll_top_blocked),
        ]
        return {job.name: job for job in jobs}

    @property
    def context(self) -> PollContext:
        return self._context

    @property
    def is_running(self) -> bool:
        return self._scheduler.running and not self._shut_down

    def start(self) -> None:
        """Register the interval jobs and start polling, first ticks immediately"""
        if self._shut_down:
            logger.warning("Scheduler already shut down, not restarting")
            return
        if self._scheduler.running:
            return

        now = datetime.now(timezone.utc)
        for job in self.jobs.values():
            self._scheduler.add_job(
                self._tick,
                trigger=IntervalTrigger(seconds=job.period),
                args=[job.name],
                id=job.name,
                name=job.name,
                executor=job.name,
                next_run_time=now,
                replace_existing=True,
            )
        self._scheduler.start()
        logger.info(
            "Scheduler started - "
            + ", ".join(f"{job.name}: {job.period}s" for job in self.jobs.values())
            + f" ({len(self._context.handlers)} appliance(s))"
        )

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def _tick(self, name: str) -> None:
        with self._lock:
            if self._shut_down:
                return
            self._in_flight += 1
        try:
            job = self.jobs[name]
            snapshot = job.func(self._context)
            if snapshot is not None:
                self.sink.publish(name, snapshot)
            else:
                logger.debug(f"{name}: no reachable appliance, nothing published")
        except Exception:
            logger.exception(f"Polling job '{name}' failed")
        finally:
            with self._idle:
                self._in_flight -= 1
                self._idle.notify_all()

    def run_now(self, name: str) -> None:
        """Run one tick of a job on the calling thread"""
        if name not in self.jobs:
            raise ValueError(f"Unknown job: {name}")
        self._tick(name)

    def refresh_all(self) -> None:
        """Run every job once right away"""
        if not self.is_running:
            for name in self.jobs:
                self.run_now(name)
            return
        for name in self.jobs:
            # No trigger means a single run as soon as a worker is free
            self._scheduler.add_job(self._tick, args=[name], name=f"refresh {name}", executor=name)

    def poll_status(self, context: PollContext) -> StatusSnapshot:
        return combine_stats([h.get_stats() for h in context.handlers])

    def poll_trend(self, context: PollContext) -> Optional[TrendSnapshot]:
        return combine_trends([h.get_trend() for h in context.handlers])

    def poll_liveness(self, context: PollContext) -> LivenessSnapshot:
        context = self._rebuild_stale_handlers(context)
        appliances = []
        for handler in context.handlers:
            version = handler.get_version()
            appliances.append(ApplianceLiveness(
                source=handler.source,
                address=handler.config.address,
                reachable=bool(version),
                version=version,
            ))
        snapshot = LivenessSnapshot(appliances=tuple(appliances))
        if not snapshot.active:
            logger.warning(NO_ACTIVE_APPLIANCE)
        return snapshot

    def poll_top_blocked(self, context: PollContext) -> Optional[TopBlockedSnapshot]:
        return merge_top_blocked([h.get_top_blocked(context.top_x) for h in context.handlers], context.top_x)

    def _rebuild_stale_handlers(self, context: PollContext) -> PollContext:
        """Construct fresh handlers for appliances that lost their session.

        A rebuilt handler only replaces the old one once it authenticated, so
        an appliance that is still down costs one login attempt per call.
        """
        stale = [h for h in context.handlers if h.needs_rebuild]
        if not stale:
            return context

        handlers = []
        replaced = []
        for handler in context.handlers:
            if handler in stale:
                fresh = self.handler_factory(handler.config, self.settings)
                if fresh.needs_rebuild:
                    self._close_handlers((fresh,))
                else:
                    logger.info(f"{handler!r}: session re-established")
                    replaced.append(handler)
                    handler = fresh
            handlers.append(handler)
        if not replaced:
            return context

        rebuilt = PollContext(handlers=tuple(handlers), top_x=context.top_x)
        with self._lock:
            swapped = self._context is context and not self._shut_down
            if swapped:
                self._context = rebuilt
        if not swapped:
            # Reconfigured or shut down meanwhile
            self._close_handlers(tuple(h for h in handlers if h not in context.handlers))
            return context
        self._retire(tuple(replaced))
        return rebuilt

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def reconfigure(self, settings: MonitorSettings) -> None:
        """Build handlers for new settings and swap them in.

        Ticks already running finish against the old handlers, which are
        closed once the shutdown grace period has passed.
        """
        if self._shut_down:
            raise RuntimeError("Scheduler has been shut down")

        new_context = PollContext(handlers=self._build_handlers(settings), top_x=settings.top_x)
        with self._lock:
            old_context = self._context
            self._context = new_context
            self.settings = settings
            self.jobs = self._build_jobs(settings)

        if self._scheduler.running:
            for job in self.jobs.values():
                self._scheduler.reschedule_job(job.name, trigger=IntervalTrigger(seconds=job.period))
        self._retire(old_context.handlers)
        logger.info(f"Reconfigured with {len(new_context.handlers)} appliance(s)")

    def _retire(self, handlers: Tuple[DnsBlockerHandler, ...]) -> None:
        """Close replaced handlers once ticks still using them had their grace period"""
        with self._lock:
            deferred = self._scheduler.running and not self._shut_down
            if deferred:
                self._retired.extend(handlers)
        if not deferred:
            self._close_handlers(handlers)
            return
        self._scheduler.add_job(
            self._close_retired,
            trigger="date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=self.settings.shutdown_grace_seconds),
            args=[handlers],
            name="close replaced handlers",
        )

    def _close_retired(self, handlers: Tuple[DnsBlockerHandler, ...]) -> None:
        with self._lock:
            due = [h for h in handlers if h in self._retired]
            self._retired = [h for h in self._retired if h not in due]
        self._close_handlers(tuple(due))

    def set_blocking(self, enabled: bool, timer_seconds: Optional[int] = None) -> Dict[str, Optional[Dict[str, Any]]]:
        """Apply the blocking state to every appliance; responses keyed by address"""
        results = {}
        for handler in self._context.handlers:
            results[handler.config.address] = handler.set_dns_blocking(enabled, timer_seconds)
        return results

    def toggle_blocking(self, timer_seconds: Optional[int] = None) -> Optional[bool]:
        """Disable when any appliance is blocking, otherwise enable.

        Returns the requested state, or None when no appliance answered.
        """
        statuses = [h.get_dns_blocking_status() for h in self._context.handlers]
        known = [s.enabled for s in statuses if s is not None and s.enabled is not None]
        if not known:
            logger.warning("Blocking state unknown on every appliance, not toggling")
            return None
        target = not any(known)
        self.set_blocking(target, timer_seconds if not target else None)
        return target

    def last_blocked(self) -> str:
        for handler in self._context.handlers:
            domain = handler.get_last_blocked()
            if domain:
                return domain
        return ""

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    @staticmethod
    def _close_handlers(handlers: Tuple[DnsBlockerHandler, ...]) -> None:
        for handler in handlers:
            try:
                handler.close()
            except Exception as e:
                logger.error(f"Failed to close {handler!r}: {e}")

    def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        """Stop new ticks, wait for running ones, then close the handlers.

        Ticks still running after the grace period see their HTTP client
        closed underneath them and fail. Safe to call more than once.
        """
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True

        if grace_seconds is None:
            grace_seconds = self.settings.shutdown_grace_seconds

        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

        deadline = time.monotonic() + max(0.0, grace_seconds)
        with self._idle:
            while self._in_flight > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._idle.wait(remaining)
            pending = self._in_flight

        if pending:
            logger.warning(f"{pending} tick(s) still running after {grace_seconds}s, closing connections")
        with self._lock:
            retired, self._retired = self._retired, []
        self._close_handlers(tuple(retired) + self._context.handlers)
        logger.info("Scheduler stopped")
