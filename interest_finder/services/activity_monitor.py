"""
Activity Monitor - per-user request tracking and abuse heuristics.

Each authenticated request appends a timestamp to the user's window. The
window is pruned to the trailing hour and three independent heuristics are
evaluated on it:

- rate limit:         more than `rate_limit` requests in the window
- burst limit:        more than `burst_limit` requests in the trailing
                      `burst_window_seconds`
- automated pattern:  at least `automation_min_samples` requests whose
                      inter-arrival intervals all sit within
                      `automation_tolerance_ms` of their mean

The automated-pattern check is deliberately crude: a perfectly regular
window (zero variance) always trips it.

A reason is reported once per crossing. It fires when its heuristic goes
from clear to tripped and re-arms when the heuristic clears again.

Reporting (audit log + email) is a best-effort side channel running in
background tasks; its failures are logged and never reach the request.

The whole user map is cleared on a fixed hourly cadence by a scheduled task
owned by the monitor (`start()` / `stop()`).
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from interest_finder.core.config_loader import build_tunables
from interest_finder.services.database_service import DatabaseService, get_db_service
from interest_finder.services.notifier import EmailNotifier, get_notifier

logger = logging.getLogger(__name__)

ContactResolver = Callable[[str], Awaitable[Optional[str]]]


class ViolationReason(str, Enum):
    RATE_LIMIT = "rate-limit-exceeded"
    BURST_LIMIT = "burst-limit-exceeded"
    AUTOMATED_PATTERN = "automated-pattern-detected"


_REASON_TITLES = {
    ViolationReason.RATE_LIMIT: "Rate limit exceeded",
    ViolationReason.BURST_LIMIT: "Burst limit exceeded",
    ViolationReason.AUTOMATED_PATTERN: "Automated scanning detected",
}


@dataclass(frozen=True)
class ViolationReport:
    user_id: str
    reason: ViolationReason
    details: Dict[str, Any]
    timestamp: float


@dataclass(frozen=True)
class MonitorThresholds:
    """Heuristic constants. Loaded from configs/monitoring.json by default."""
    window_seconds: float = 3600.0
    clear_interval_seconds: float = 3600.0
    rate_limit: int = 100
    burst_limit: int = 20
    burst_window_seconds: float = 60.0
    automation_min_samples: int = 11
    automation_tolerance_ms: float = 100.0

    @classmethod
    def from_config(cls) -> "MonitorThresholds":
        return build_tunables(cls, "monitoring")


@dataclass
class MonitorMetrics:
    tracked_requests: int = 0
    violations: Dict[str, int] = field(default_factory=dict)
    report_failures: int = 0
    clears: int = 0


def evaluate_window(
    window: List[float],
    now: float,
    thresholds: MonitorThresholds,
) -> Dict[ViolationReason, Dict[str, Any]]:
    """
    Runs the three heuristics on a pruned, ordered window.

    Returns:
        reason -> details, for every heuristic that is tripped
    """
    tripped: Dict[ViolationReason, Dict[str, Any]] = {}

    if len(window) > thresholds.rate_limit:
        tripped[ViolationReason.RATE_LIMIT] = {
            "requests": len(window),
            "limit": thresholds.rate_limit,
            "timeframe": "hour",
        }

    burst_cutoff = now - thresholds.burst_window_seconds
    recent = sum(1 for t in window if t > burst_cutoff)
    if recent > thresholds.burst_limit:
        tripped[ViolationReason.BURST_LIMIT] = {
            "requests": recent,
            "limit": thresholds.burst_limit,
            "timeframe": "minute",
        }

    if len(window) >= thresholds.automation_min_samples:
        intervals = [b - a for a, b in zip(window, window[1:])]
        average = sum(intervals) / len(intervals)
        tolerance = thresholds.automation_tolerance_ms / 1000.0
        if all(abs(interval - average) < tolerance for interval in intervals):
            tripped[ViolationReason.AUTOMATED_PATTERN] = {
                "pattern": "Consistent request intervals",
                "average_interval_ms": round(average * 1000, 1),
            }

    return tripped


class ActivityMonitor:
    """Owns the per-user activity windows and the hourly clear task."""

    def __init__(
        self,
        store: DatabaseService = None,
        notifier: EmailNotifier = None,
        contact_resolver: Optional[ContactResolver] = None,
        thresholds: MonitorThresholds = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            store: Audit log persistence
            notifier: Operator email
            contact_resolver: async user_id -> email lookup, used in the alert body
            thresholds: Heuristic constants
            clock: Epoch-seconds clock, injectable for tests
        """
        self._store = store or get_db_service()
        self._notifier = notifier or get_notifier()
        self._contact_resolver = contact_resolver
        self.thresholds = thresholds or MonitorThresholds.from_config()
        self._clock = clock

        self._windows: Dict[str, List[float]] = {}
        self._tripped: Dict[str, Set[ViolationReason]] = {}
        self._pending: Set[asyncio.Task] = set()
        self._clear_task: Optional[asyncio.Task] = None
        self._metrics = MonitorMetrics()

    def set_contact_resolver(self, resolver: ContactResolver) -> None:
        self._contact_resolver = resolver

    def window_for(self, user_id: str) -> List[float]:
        return list(self._windows.get(user_id, []))

    def _record(self, user_id: str, endpoint: str) -> List[ViolationReport]:
        # No await in here: each update is atomic on the event loop.
        now = self._clock()
        cutoff = now - self.thresholds.window_seconds
        window = [t for t in self._windows.get(user_id, []) if t > cutoff]
        window.append(now)
        self._windows[user_id] = window
        self._metrics.tracked_requests += 1

        tripped = evaluate_window(window, now, self.thresholds)
        previously = self._tripped.get(user_id, set())
        self._tripped[user_id] = set(tripped)

        reports = []
        for reason, details in tripped.items():
            if reason in previously:
                continue
            reports.append(
                ViolationReport(
                    user_id=user_id,
                    reason=reason,
                    details={**details, "endpoint": endpoint},
                    timestamp=now,
                )
            )
            self._metrics.violations[reason.value] = self._metrics.violations.get(reason.value, 0) + 1
        return reports

    async def track(self, user_id: str, endpoint: str) -> List[ViolationReport]:
        """
        Records a request and evaluates the heuristics.

        Violations are reported in the background; this never raises because
        of the reporting path.

        Returns:
            Violations newly raised by this request
        """
        reports = self._record(user_id, endpoint)
        for report in reports:
            logger.warning(
                f"🚨 [ActivityMonitor] user={report.user_id} reason={report.reason.value} "
                f"details={report.details}"
            )
            task = asyncio.create_task(self.report_violation(report))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return reports

    async def report_violation(self, report: ViolationReport) -> None:
        """Audit log + operator email. Failures are logged, never raised."""
        try:
            await self._store.save_security_alert(report.user_id, report.reason.value, report.details)
        except Exception as e:
            self._metrics.report_failures += 1
            logger.error(f"❌ [ActivityMonitor] Failed to persist security alert for {report.user_id}: {e}")

        contact = None
        if self._contact_resolver is not None:
            try:
                contact = await self._contact_resolver(report.user_id)
            except Exception as e:
                logger.error(f"❌ [ActivityMonitor] Failed to resolve contact for {report.user_id}: {e}")

        when = datetime.fromtimestamp(report.timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        body = (
            "Suspicious Activity Detected\n\n"
            f"User: {contact or 'unknown'} ({report.user_id})\n"
            f"Reason: {_REASON_TITLES[report.reason]}\n"
            f"Details: {json.dumps(report.details, indent=2)}\n"
            f"Time: {when}\n"
        )
        try:
            await self._notifier.send("Suspicious Activity Alert", body)
        except Exception as e:
            self._metrics.report_failures += 1
            logger.error(f"❌ [ActivityMonitor] Failed to send alert for {report.user_id}: {e}")

    def clear(self) -> None:
        """Drops every activity window (the coarse hourly reset)."""
        count = len(self._windows)
        self._windows.clear()
        self._tripped.clear()
        self._metrics.clears += 1
        logger.info(f"[ActivityMonitor] Cleared activity for {count} users")

    async def _clear_loop(self):
        while True:
            await asyncio.sleep(self.thresholds.clear_interval_seconds)
            self.clear()

    def start(self) -> None:
        """Starts the hourly clear task."""
        if self._clear_task and not self._clear_task.done():
            return
        self._clear_task = asyncio.create_task(self._clear_loop())
        logger.info(
            f"[ActivityMonitor] Started (clear every {self.thresholds.clear_interval_seconds:.0f}s)"
        )

    async def stop(self) -> None:
        """Stops the clear task and waits for outstanding reports."""
        if self._clear_task and not self._clear_task.done():
            self._clear_task.cancel()
            try:
                await self._clear_task
            except asyncio.CancelledError:
                pass
        self._clear_task = None
        await self.wait_pending()
        logger.info("[ActivityMonitor] Stopped")

    async def wait_pending(self) -> None:
        """Waits for background violation reports to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def is_running(self) -> bool:
        return self._clear_task is not None and not self._clear_task.done()

    def get_status(self) -> Dict[str, Any]:
        """Operator view: counters and thresholds. Not for end users."""
        return {
            "tracked_users": len(self._windows),
            "running": self.is_running,
            "pending_reports": len(self._pending),
            "metrics": {
                "tracked_requests": self._metrics.tracked_requests,
                "violations": dict(self._metrics.violations),
                "report_failures": self._metrics.report_failures,
                "clears": self._metrics.clears,
            },
            "thresholds": {
                "rate_limit": self.thresholds.rate_limit,
                "burst_limit": self.thresholds.burst_limit,
                "automation_min_samples": self.thresholds.automation_min_samples,
                "automation_tolerance_ms": self.thresholds.automation_tolerance_ms,
            },
        }


_activity_monitor: Optional[ActivityMonitor] = None


def get_activity_monitor() -> ActivityMonitor:
    """Returns the ActivityMonitor singleton."""
    global _activity_monitor
    if _activity_monitor is None:
        _activity_monitor = ActivityMonitor()
    return _activity_monitor
