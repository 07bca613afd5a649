"""Health assessment of tracked processes and the periodic sweep task."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from ..config import ProcessSettings
from .models import HealthIssue, HealthMetrics, HealthReport, HealthStatus, ProcessInfo

if TYPE_CHECKING:
    from .manager import ProcessManager

logger = logging.getLogger(__name__)


def assess_health(
    process: ProcessInfo, now: datetime, settings: ProcessSettings
) -> HealthReport:
    """Build a fresh :class:`HealthReport` for ``process`` as of ``now``.

    Responsiveness bands, by seconds since ``last_activity``:
    more than ``unresponsive_after`` is unresponsive, from ``degraded_after``
    (inclusive) up to ``unresponsive_after`` is degraded, anything below is
    healthy. Frequent restarts floor the result at degraded.
    """
    elapsed = (now - process.last_activity).total_seconds()
    status = HealthStatus.HEALTHY
    issues: List[HealthIssue] = []

    if elapsed > settings.unresponsive_after:
        status = HealthStatus.UNRESPONSIVE
        issues.append(
            HealthIssue(
                severity="critical",
                type="unresponsive",
                description=(
                    f"Process has not responded in over "
                    f"{settings.unresponsive_after:.0f} seconds"
                ),
                timestamp=now,
            )
        )
    elif elapsed >= settings.degraded_after:
        status = HealthStatus.DEGRADED
        issues.append(
            HealthIssue(
                severity="medium",
                type="slow_response",
                description="Process response time is degraded",
                timestamp=now,
            )
        )

    if process.restart_count > process.max_restarts * settings.frequent_restart_ratio:
        if status is HealthStatus.HEALTHY:
            status = HealthStatus.DEGRADED
        issues.append(
            HealthIssue(
                severity="high",
                type="frequent_restarts",
                description=f"Process has restarted {process.restart_count} times",
                timestamp=now,
            )
        )

    return HealthReport(
        agent_id=process.agent_id,
        pid=process.pid,
        status=status,
        metrics=HealthMetrics(
            response_time_ms=elapsed * 1000,
            restart_count=process.restart_count,
            child_count=len(process.child_pids),
            allocation_count=len(process.resource_allocations),
        ),
        issues=issues,
        last_reported=now,
    )


class HealthMonitor:
    """Runs ``ProcessManager.monitor_health`` every ``interval`` seconds."""

    def __init__(self, manager: "ProcessManager", interval: Optional[float] = None) -> None:
        self._manager = manager
        self.interval = interval or manager.settings.health_sweep_interval
        self._task: Optional[asyncio.Task] = None
        self.sweeps = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="agentric-health-sweep")
        logger.info(f"Health monitor started (interval={self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Health monitor stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self._manager.monitor_health()
            except Exception:
                logger.exception("Health sweep failed")
            self.sweeps += 1

    async def __aenter__(self) -> "HealthMonitor":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()
