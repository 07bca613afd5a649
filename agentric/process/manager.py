"""Lifecycle management for agent processes."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from ..config import ProcessSettings
from ..constants import PROCESS_MANAGER_AGENT_ID
from ..contracts import AgentMessage, EventPriority, MessageType, TaskRequest, utcnow
from ..errors import (
    AgentricError,
    InvalidStateTransitionError,
    ProcessNotFoundError,
    RestartLimitExceededError,
    UnknownTaskTypeError,
)
from ..events import EventEmitter
from .health import HealthMonitor, assess_health
from .models import (
    HealthReport,
    HealthStatus,
    ProcessInfo,
    ProcessStatus,
    ResourceAllocation,
    ResourceRequest,
    SpawnConfig,
    SystemHealth,
)
from .resources import ResourceManager

logger = logging.getLogger(__name__)

# Processes in these states are left out of health sweeps.
_UNSWEPT = (ProcessStatus.STOPPING, ProcessStatus.STOPPED, ProcessStatus.CRASHED)


class ProcessManager:
    """Tracks spawned processes, their resources and their health.

    All state is owned by the instance; several managers can coexist.
    """

    def __init__(
        self,
        events: Optional[EventEmitter] = None,
        resources: Optional[ResourceManager] = None,
        settings: Optional[ProcessSettings] = None,
        agent_id: str = PROCESS_MANAGER_AGENT_ID,
    ) -> None:
        self.agent_id = agent_id
        self.events = events or EventEmitter()
        self.resources = resources or ResourceManager()
        self.settings = settings or ProcessSettings()
        self._processes: Dict[str, ProcessInfo] = {}
        self._health_reports: Dict[str, HealthReport] = {}
        self._monitor: Optional[HealthMonitor] = None

    # ------------------------------------------------------------------
    # Lifecycle
    async def spawn(
        self,
        agent_id: str,
        config: Union[SpawnConfig, Dict[str, Any], None] = None,
    ) -> str:
        """Create and start a process for ``agent_id``; return its pid.

        Raises:
            ProcessNotFoundError: ``parent_pid`` does not name a tracked process.
            ResourceAllocationError: the requested resources cannot be granted.
        """
        if not isinstance(config, SpawnConfig):
            config = SpawnConfig.model_validate(config or {})

        parent = None
        if config.parent_pid is not None:
            parent = self._require(config.parent_pid)
            if parent.status is ProcessStatus.STOPPED:
                raise InvalidStateTransitionError(
                    "spawn a child of", parent.status.value, f"process {parent.pid}"
                )

        pid = f"proc-{uuid.uuid4()}"
        logger.info(f"Spawning process {pid} for agent {agent_id}")

        allocation_ids: List[str] = []
        if config.resources is not None:
            try:
                allocation = self.resources.request(config.resources, owner_pid=pid)
            except AgentricError:
                logger.error(f"Failed to allocate resources for process {pid}")
                raise
            allocation_ids.append(allocation.allocation_id)

        process = ProcessInfo(
            pid=pid,
            agent_id=agent_id,
            name=config.name or agent_id,
            priority=config.priority,
            parent_pid=config.parent_pid,
            resource_allocations=allocation_ids,
            max_restarts=(
                config.max_restarts
                if config.max_restarts is not None
                else self.settings.default_max_restarts
            ),
        )
        if parent is not None:
            parent.child_pids.append(pid)
        self._processes[pid] = process

        await self._start(process)
        return pid

    async def terminate(self, pid: str) -> None:
        """Stop ``pid`` and all of its descendants, children first."""
        process = self._require(pid)
        if process.status is ProcessStatus.STOPPED:
            raise InvalidStateTransitionError("terminate", process.status.value, f"process {pid}")

        logger.info(f"Terminating process {pid}")
        for child_pid in list(process.child_pids):
            child = self._processes.get(child_pid)
            if child is None or child.status is ProcessStatus.STOPPED:
                process.child_pids.remove(child_pid)
                continue
            await self.terminate(child_pid)

        self._transition(process, ProcessStatus.STOPPING)
        for allocation_id in list(process.resource_allocations):
            self.resources.release(allocation_id)
        process.resource_allocations.clear()

        if process.parent_pid is not None:
            parent = self._processes.get(process.parent_pid)
            if parent is not None and pid in parent.child_pids:
                parent.child_pids.remove(pid)

        self._transition(process, ProcessStatus.STOPPED)
        await self._emit("process_terminated", process)

    async def pause(self, pid: str) -> None:
        process = self._require(pid)
        if process.status is not ProcessStatus.RUNNING:
            raise InvalidStateTransitionError("pause", process.status.value, f"process {pid}")
        self._transition(process, ProcessStatus.PAUSED)
        await self._emit("process_paused", process)

    async def resume(self, pid: str) -> None:
        process = self._require(pid)
        if process.status is not ProcessStatus.PAUSED:
            raise InvalidStateTransitionError("resume", process.status.value, f"process {pid}")
        self._transition(process, ProcessStatus.RUNNING)
        await self._emit("process_resumed", process)

    async def restart(self, pid: str) -> None:
        """Cycle ``pid`` through stopping back to running.

        Raises:
            RestartLimitExceededError: ``restart_count`` already reached
                ``max_restarts``; the record is left untouched.
        """
        process = self._require(pid)
        if process.status not in (
            ProcessStatus.RUNNING,
            ProcessStatus.PAUSED,
            ProcessStatus.CRASHED,
        ):
            raise InvalidStateTransitionError("restart", process.status.value, f"process {pid}")
        if process.restart_count >= process.max_restarts:
            raise RestartLimitExceededError(pid, process.max_restarts)

        logger.info(f"Restarting process {pid}")
        self._transition(process, ProcessStatus.STOPPING)
        await asyncio.sleep(self.settings.restart_settle_delay)
        if process.status is not ProcessStatus.STOPPING:
            logger.warning(f"Process {pid} changed to {process.status.value} while restarting")
            return

        await self._start(process)
        process.restart_count += 1
        await self._emit(
            "process_restarted",
            process,
            priority=EventPriority.HIGH,
            restartCount=process.restart_count,
        )

    def touch(self, pid: str) -> None:
        """Record activity for ``pid`` without changing its state."""
        self._require(pid).last_activity = utcnow()

    # ------------------------------------------------------------------
    # Queries
    def get_process(self, pid: str) -> Optional[ProcessInfo]:
        return self._processes.get(pid)

    def list_processes(
        self,
        status: Optional[ProcessStatus] = None,
        priority: Optional[EventPriority] = None,
        agent_id: Optional[str] = None,
    ) -> List[ProcessInfo]:
        processes = list(self._processes.values())
        if status is not None:
            processes = [p for p in processes if p.status == status]
        if priority is not None:
            processes = [p for p in processes if p.priority == priority]
        if agent_id is not None:
            processes = [p for p in processes if p.agent_id == agent_id]
        return processes

    @property
    def health_reports(self) -> Dict[str, HealthReport]:
        return dict(self._health_reports)

    def get_system_health(self) -> SystemHealth:
        total = len(self._processes)
        running = len(self.list_processes(status=ProcessStatus.RUNNING))
        return SystemHealth(
            total_processes=total,
            running_processes=running,
            healthy_processes=sum(
                1 for r in self._health_reports.values() if r.status is HealthStatus.HEALTHY
            ),
            resource_allocations=len(self.resources.allocations),
            system_load=(running / total) * 100 if total else 0.0,
        )

    # ------------------------------------------------------------------
    # Health
    async def monitor_health(self, now: Optional[datetime] = None) -> List[HealthReport]:
        """Reassess every live process and react to critical findings."""
        now = now or utcnow()
        reports: List[HealthReport] = []
        for process in list(self._processes.values()):
            if process.status in _UNSWEPT:
                continue
            report = assess_health(process, now, self.settings)
            self._health_reports[process.pid] = report
            process.health_status = (
                HealthStatus.CRITICAL
                if report.status is HealthStatus.UNRESPONSIVE
                else report.status
            )
            reports.append(report)

            if report.status in (HealthStatus.CRITICAL, HealthStatus.UNRESPONSIVE):
                await self._handle_critical_health(process, report)

        logger.debug(f"Health sweep assessed {len(reports)} processes")
        return reports

    def start_health_monitor(self, interval: Optional[float] = None) -> HealthMonitor:
        if self._monitor is None or not self._monitor.running:
            self._monitor = HealthMonitor(self, interval)
            self._monitor.start()
        return self._monitor

    async def stop_health_monitor(self) -> None:
        if self._monitor is not None:
            await self._monitor.stop()
            self._monitor = None

    async def _handle_critical_health(self, process: ProcessInfo, report: HealthReport) -> None:
        logger.warning(f"Critical health issue detected for process {process.pid}")
        if report.status is not HealthStatus.UNRESPONSIVE:
            return
        try:
            await self.restart(process.pid)
        except (RestartLimitExceededError, InvalidStateTransitionError) as e:
            logger.error(f"Failed to restart unresponsive process {process.pid}: {e}")
            self._transition(process, ProcessStatus.CRASHED)
            await self._emit(
                "process_restart_failed",
                process,
                priority=EventPriority.CRITICAL,
                type="error-event",
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Resources
    async def request_resources(
        self, spec: Union[ResourceRequest, Dict[str, Any]], owner_pid: Optional[str] = None
    ) -> ResourceAllocation:
        if not isinstance(spec, ResourceRequest):
            spec = ResourceRequest.model_validate(spec)
        owner = self._require(owner_pid) if owner_pid is not None else None
        allocation = self.resources.request(spec, owner_pid=owner_pid)
        if owner is not None:
            owner.resource_allocations.append(allocation.allocation_id)
        return allocation

    async def release_resources(self, allocation_id: str) -> None:
        allocation = self.resources.get(allocation_id)
        if allocation is None:
            return
        owner = self._processes.get(allocation.owner_pid or "")
        if owner is not None and allocation_id in owner.resource_allocations:
            owner.resource_allocations.remove(allocation_id)
        self.resources.release(allocation_id)

    async def update_usage(self, allocation_id: str, usage: Dict[str, Any]) -> None:
        self.resources.update_usage(allocation_id, usage)

    # ------------------------------------------------------------------
    # Inbound contracts
    async def process_task(self, task: Union[TaskRequest, Dict[str, Any]]) -> Any:
        if not isinstance(task, TaskRequest):
            task = TaskRequest.model_validate(task)
        data = task.data

        if task.type == "spawn_process":
            return await self.spawn(data["agentId"], data.get("config"))
        if task.type == "terminate_process":
            return await self.terminate(data["pid"])
        if task.type == "pause_process":
            return await self.pause(data["pid"])
        if task.type == "resume_process":
            return await self.resume(data["pid"])
        if task.type == "restart_process":
            return await self.restart(data["pid"])
        if task.type == "get_process_info":
            return self.get_process(data["pid"])
        if task.type == "list_processes":
            criteria = data.get("filter") or {}
            return self.list_processes(
                status=criteria.get("status"),
                priority=criteria.get("priority"),
                agent_id=criteria.get("agentId"),
            )
        if task.type == "monitor_health":
            return await self.monitor_health()
        raise UnknownTaskTypeError(task.type)

    async def handle_message(self, message: AgentMessage) -> Optional[AgentMessage]:
        """Serve process requests from other agents; returns the reply, if any."""
        if message.type == MessageType.PROCESS_SPAWN_REQUEST:
            try:
                pid = await self.spawn(message.data["agentId"], message.data.get("config"))
                data = {"success": True, "pid": pid}
            except (AgentricError, ValueError) as e:
                data = {"success": False, "error": str(e)}
            if message.requires_response:
                return message.reply(MessageType.PROCESS_SPAWN_RESPONSE.value, data)
            return None

        if message.type == MessageType.PROCESS_TERMINATE_REQUEST:
            try:
                await self.terminate(message.data["pid"])
                data = {"success": True}
            except AgentricError as e:
                data = {"success": False, "error": str(e)}
            if message.requires_response:
                return message.reply(MessageType.PROCESS_TERMINATE_RESPONSE.value, data)
            return None

        if message.type == MessageType.HEALTH_CHECK_REQUEST:
            reports = await self.monitor_health()
            return message.reply(
                MessageType.HEALTH_CHECK_RESPONSE.value,
                {"healthReports": [r.model_dump(mode="json") for r in reports]},
            )

        logger.info(f"Process manager received unknown message type: {message.type}")
        return None

    # ------------------------------------------------------------------
    # Internals
    def _require(self, pid: str) -> ProcessInfo:
        process = self._processes.get(pid)
        if process is None:
            raise ProcessNotFoundError(pid)
        return process

    def _transition(self, process: ProcessInfo, status: ProcessStatus) -> None:
        logger.debug(f"Process {process.pid}: {process.status.value} -> {status.value}")
        process.status = status
        process.last_activity = utcnow()

    async def _start(self, process: ProcessInfo) -> None:
        self._transition(process, ProcessStatus.RUNNING)
        await self._emit("process_started", process)

    async def _emit(
        self,
        name: str,
        process: ProcessInfo,
        priority: EventPriority = EventPriority.NORMAL,
        type: str = "system-event",
        **data: Any,
    ) -> None:
        await self.events.event(
            name,
            source=self.agent_id,
            priority=priority,
            type=type,
            pid=process.pid,
            agentId=process.agent_id,
            **data,
        )
