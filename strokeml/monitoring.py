"""
Production Monitoring

After a deployment, a ProductionMonitor probes live performance every
`interval_s` seconds for `window_hours`. It ends early when:

    - a probe shows degradation (automatic rollback)
    - a manual rollback is requested through the CancellationToken
      (this wakes the sleeping loop immediately)
    - the token is cancelled

Degradation means current accuracy below baseline * (1 - tolerance), more
user complaints than allowed, or a crash rate above the limit.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .config import PipelineConfig
from .schema import utc_now

logger = logging.getLogger(__name__)


class MonitoringResult(str, Enum):
    STABLE = "stable"
    AUTO_ROLLBACK = "auto_rollback"
    MANUAL_ROLLBACK = "manual_rollback"
    CANCELLED = "cancelled"


@dataclass
class ProductionSnapshot:
    """Live performance signals at one check."""
    current_accuracy: float
    baseline_accuracy: float
    user_complaints: int = 0
    crash_rate: float = 0.0
    timestamp: str = field(default_factory=utc_now)

    def rollback_reasons(
        self,
        degradation_tolerance: float = 0.05,
        max_complaints: int = 10,
        max_crash_rate: float = 0.005
    ) -> List[str]:
        reasons = []
        floor = self.baseline_accuracy * (1.0 - degradation_tolerance)
        if self.current_accuracy < floor:
            reasons.append(f"accuracy {self.current_accuracy:.3f} below {floor:.3f}")
        if self.user_complaints > max_complaints:
            reasons.append(f"{self.user_complaints} user complaints (max {max_complaints})")
        if self.crash_rate > max_crash_rate:
            reasons.append(f"crash rate {self.crash_rate:.4f} (max {max_crash_rate})")
        return reasons

    def requires_rollback(self, **limits) -> bool:
        return bool(self.rollback_reasons(**limits))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'current_accuracy': self.current_accuracy,
            'baseline_accuracy': self.baseline_accuracy,
            'user_complaints': self.user_complaints,
            'crash_rate': self.crash_rate,
            'timestamp': self.timestamp,
        }


class CancellationToken:
    """
    Stops a monitoring loop from outside.

    cancel() ends the loop at its next checkpoint. request_rollback() ends
    it immediately, even mid-sleep, with a manual rollback outcome.
    """

    def __init__(self):
        # Created on first sleep so it binds to the loop that awaits it
        self._event: Optional[asyncio.Event] = None
        self.cancelled = False
        self.rollback_reason: Optional[str] = None

    @property
    def rollback_requested(self) -> bool:
        return self.rollback_reason is not None

    def _wake(self):
        if self._event is not None:
            self._event.set()

    def cancel(self):
        self.cancelled = True
        self._wake()

    def request_rollback(self, reason: str = "Manual rollback requested"):
        self.rollback_reason = reason
        self._wake()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to `seconds`; True if woken early by cancel/rollback."""
        if self.cancelled or self.rollback_requested:
            return True
        if self._event is None:
            self._event = asyncio.Event()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, seconds))
            return True
        except asyncio.TimeoutError:
            return False


@dataclass
class MonitoringOutcome:
    result: MonitoringResult
    checks: int
    snapshot: Optional[ProductionSnapshot] = None
    reason: str = ""

    @property
    def rolled_back(self) -> bool:
        return self.result in (MonitoringResult.AUTO_ROLLBACK, MonitoringResult.MANUAL_ROLLBACK)


Probe = Callable[[], Union[ProductionSnapshot, Awaitable[ProductionSnapshot]]]


class ProductionMonitor:
    """
    Recurring timed check over a bounded window.

    Args:
        probe: Returns the current ProductionSnapshot (sync or async)
        interval_s: Seconds between checks
        window_hours: Total monitoring window
        degradation_tolerance: Allowed relative accuracy drop
        max_complaints: Complaint count that triggers rollback when exceeded
        max_crash_rate: Crash rate that triggers rollback when exceeded
        clock: Monotonic time source
    """

    def __init__(
        self,
        probe: Probe,
        interval_s: float = 300.0,
        window_hours: float = 24.0,
        degradation_tolerance: float = 0.05,
        max_complaints: int = 10,
        max_crash_rate: float = 0.005,
        clock: Callable[[], float] = time.monotonic
    ):
        self.probe = probe
        self.interval_s = interval_s
        self.window_hours = window_hours
        self.degradation_tolerance = degradation_tolerance
        self.max_complaints = max_complaints
        self.max_crash_rate = max_crash_rate
        self.clock = clock

    @classmethod
    def from_config(cls, probe: Probe, config: PipelineConfig, **kwargs) -> 'ProductionMonitor':
        return cls(
            probe,
            interval_s=config.monitor_interval_seconds,
            window_hours=config.max_rollback_window_hours,
            degradation_tolerance=config.degradation_tolerance,
            max_complaints=config.max_user_complaints,
            max_crash_rate=config.max_crash_rate,
            **kwargs
        )

    async def _take_snapshot(self) -> ProductionSnapshot:
        snapshot = self.probe()
        if inspect.isawaitable(snapshot):
            snapshot = await snapshot
        return snapshot

    def check(self, snapshot: ProductionSnapshot) -> List[str]:
        return snapshot.rollback_reasons(
            degradation_tolerance=self.degradation_tolerance,
            max_complaints=self.max_complaints,
            max_crash_rate=self.max_crash_rate
        )

    async def run(self, token: Optional[CancellationToken] = None) -> MonitoringOutcome:
        """Monitor until degradation, manual rollback, cancellation or window end."""
        token = token or CancellationToken()
        deadline = self.clock() + self.window_hours * 3600.0
        checks = 0
        snapshot = None
        logger.info("Monitoring production every %.0fs for %.1fh",
                    self.interval_s, self.window_hours)

        while True:
            remaining = deadline - self.clock()
            if remaining <= 0:
                logger.info("Monitoring window complete after %d checks: stable", checks)
                return MonitoringOutcome(MonitoringResult.STABLE, checks, snapshot)

            await token.sleep(min(self.interval_s, remaining))

            if token.rollback_requested:
                logger.warning("Manual rollback requested: %s", token.rollback_reason)
                return MonitoringOutcome(MonitoringResult.MANUAL_ROLLBACK, checks,
                                         snapshot, token.rollback_reason)
            if token.cancelled:
                logger.info("Monitoring cancelled after %d checks", checks)
                return MonitoringOutcome(MonitoringResult.CANCELLED, checks, snapshot)

            snapshot = await self._take_snapshot()
            checks += 1
            reasons = self.check(snapshot)
            if reasons:
                reason = "; ".join(reasons)
                logger.warning("Performance degradation detected: %s", reason)
                return MonitoringOutcome(MonitoringResult.AUTO_ROLLBACK, checks, snapshot, reason)
