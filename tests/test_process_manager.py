"""Process manager tests."""

from datetime import timedelta

import pytest

from agentric.config import ProcessSettings
from agentric.contracts import AgentMessage, EventPriority, TaskRequest, utcnow
from agentric.errors import (
    InvalidStateTransitionError,
    ProcessNotFoundError,
    ResourceAllocationError,
    RestartLimitExceededError,
    UnknownTaskTypeError,
)
from agentric.events import EventEmitter
from agentric.process import (
    HealthStatus,
    ProcessManager,
    ProcessStatus,
    ResourceManager,
    SpawnConfig,
)


def make_manager(**settings):
    settings.setdefault("restart_settle_delay", 0)
    events = EventEmitter()
    seen = []
    events.subscribe("*", seen.append)
    manager = ProcessManager(events=events, settings=ProcessSettings(**settings))
    return manager, seen


@pytest.mark.asyncio
async def test_spawn_starts_process():
    manager, seen = make_manager()

    pid = await manager.spawn(
        "content-generator-001",
        SpawnConfig(name="generator", priority=EventPriority.HIGH),
    )

    process = manager.get_process(pid)
    assert pid.startswith("proc-")
    assert process.status is ProcessStatus.RUNNING
    assert process.name == "generator"
    assert process.priority is EventPriority.HIGH
    assert process.max_restarts == 3
    assert process.health_status is HealthStatus.HEALTHY
    assert [e.event for e in seen] == ["process_started"]
    assert seen[0].data["pid"] == pid


@pytest.mark.asyncio
async def test_spawn_accepts_plain_dict_config():
    manager, _ = make_manager()

    pid = await manager.spawn("agent-1", {"max_restarts": 1, "resources": {"memory": "64MB"}})

    process = manager.get_process(pid)
    assert process.name == "agent-1"
    assert process.max_restarts == 1
    (allocation_id,) = process.resource_allocations
    assert manager.resources.get(allocation_id).owner_pid == pid


@pytest.mark.asyncio
async def test_spawn_with_unknown_parent():
    manager, seen = make_manager()

    with pytest.raises(ProcessNotFoundError):
        await manager.spawn("agent-1", SpawnConfig(parent_pid="proc-missing"))
    assert manager.list_processes() == []
    assert seen == []


@pytest.mark.asyncio
async def test_spawn_fails_when_resources_are_exhausted():
    manager = ProcessManager(
        resources=ResourceManager(memory_capacity="1GB", memory_reserved="512MB"),
        settings=ProcessSettings(restart_settle_delay=0),
    )

    with pytest.raises(ResourceAllocationError):
        await manager.spawn("agent-1", {"resources": {"memory": "1GB"}})
    assert manager.list_processes() == []
    assert manager.resources.allocations == {}


@pytest.mark.asyncio
async def test_child_linkage():
    manager, _ = make_manager()
    parent = await manager.spawn("parent")
    child = await manager.spawn("child", SpawnConfig(parent_pid=parent))

    assert manager.get_process(parent).child_pids == [child]
    assert manager.get_process(child).parent_pid == parent


@pytest.mark.asyncio
async def test_pause_resume():
    manager, seen = make_manager()
    pid = await manager.spawn("agent-1")
    process = manager.get_process(pid)
    before = process.last_activity

    await manager.pause(pid)
    assert process.status is ProcessStatus.PAUSED
    assert process.last_activity >= before
    with pytest.raises(InvalidStateTransitionError):
        await manager.pause(pid)

    await manager.resume(pid)
    assert process.status is ProcessStatus.RUNNING
    with pytest.raises(InvalidStateTransitionError):
        await manager.resume(pid)

    assert [e.event for e in seen] == ["process_started", "process_paused", "process_resumed"]


@pytest.mark.asyncio
async def test_restart_counts_and_emits_high_priority_event():
    manager, seen = make_manager()
    pid = await manager.spawn("agent-1")

    await manager.restart(pid)

    process = manager.get_process(pid)
    assert process.status is ProcessStatus.RUNNING
    assert process.restart_count == 1
    restarted = [e for e in seen if e.event == "process_restarted"]
    assert len(restarted) == 1
    assert restarted[0].priority is EventPriority.HIGH
    assert restarted[0].data["restartCount"] == 1


@pytest.mark.asyncio
async def test_restart_limit():
    manager, _ = make_manager()
    pid = await manager.spawn("agent-1", SpawnConfig(max_restarts=2))

    await manager.restart(pid)
    await manager.restart(pid)
    with pytest.raises(RestartLimitExceededError):
        await manager.restart(pid)

    process = manager.get_process(pid)
    assert process.restart_count == 2
    assert process.status is ProcessStatus.RUNNING


@pytest.mark.asyncio
async def test_restart_requires_live_process():
    manager, _ = make_manager()
    pid = await manager.spawn("agent-1")
    await manager.terminate(pid)

    with pytest.raises(InvalidStateTransitionError):
        await manager.restart(pid)


@pytest.mark.asyncio
async def test_terminate_releases_and_unlinks():
    manager, seen = make_manager()
    parent = await manager.spawn("parent")
    child = await manager.spawn(
        "child", SpawnConfig(parent_pid=parent, resources={"memory": "128MB", "storage": "1GB"})
    )
    allocation_id = manager.get_process(child).resource_allocations[0]

    await manager.terminate(child)

    assert manager.get_process(child).status is ProcessStatus.STOPPED
    assert manager.get_process(child).resource_allocations == []
    assert manager.get_process(parent).child_pids == []
    assert allocation_id not in manager.resources.allocations
    assert manager.resources.pools["memory"].allocated == 0
    assert seen[-1].event == "process_terminated"

    with pytest.raises(InvalidStateTransitionError):
        await manager.terminate(child)
    with pytest.raises(ProcessNotFoundError):
        await manager.terminate("proc-missing")


@pytest.mark.asyncio
async def test_list_processes_filters():
    manager, _ = make_manager()
    a = await manager.spawn("agent-a", SpawnConfig(priority=EventPriority.HIGH))
    b = await manager.spawn("agent-b")
    await manager.pause(b)

    assert {p.pid for p in manager.list_processes()} == {a, b}
    assert [p.pid for p in manager.list_processes(status=ProcessStatus.PAUSED)] == [b]
    assert [p.pid for p in manager.list_processes(priority=EventPriority.HIGH)] == [a]
    assert [p.pid for p in manager.list_processes(agent_id="agent-b")] == [b]


@pytest.mark.asyncio
async def test_touch_keeps_process_healthy():
    manager, _ = make_manager()
    pid = await manager.spawn("agent-1")
    process = manager.get_process(pid)
    process.last_activity = utcnow() - timedelta(minutes=2)

    manager.touch(pid)
    (report,) = await manager.monitor_health()

    assert report.status is HealthStatus.HEALTHY
    with pytest.raises(ProcessNotFoundError):
        manager.touch("proc-missing")


@pytest.mark.asyncio
async def test_monitor_health_marks_degraded():
    manager, _ = make_manager()
    pid = await manager.spawn("agent-1")
    process = manager.get_process(pid)
    now = utcnow()
    process.last_activity = now - timedelta(minutes=1)

    (report,) = await manager.monitor_health(now)

    assert report.status is HealthStatus.DEGRADED
    assert process.health_status is HealthStatus.DEGRADED
    assert process.restart_count == 0
    assert manager.health_reports[pid] is report


@pytest.mark.asyncio
async def test_unresponsive_process_is_restarted():
    manager, seen = make_manager()
    pid = await manager.spawn("agent-1")
    process = manager.get_process(pid)
    now = utcnow()
    process.last_activity = now - timedelta(minutes=6)

    (report,) = await manager.monitor_health(now)

    assert report.status is HealthStatus.UNRESPONSIVE
    assert process.health_status is HealthStatus.CRITICAL
    assert process.restart_count == 1
    assert process.status is ProcessStatus.RUNNING
    assert "process_restarted" in [e.event for e in seen]


@pytest.mark.asyncio
async def test_failed_auto_restart_marks_crashed():
    manager, seen = make_manager()
    pid = await manager.spawn("agent-1", SpawnConfig(max_restarts=0))
    process = manager.get_process(pid)
    now = utcnow()
    process.last_activity = now - timedelta(minutes=6)

    await manager.monitor_health(now)

    assert process.status is ProcessStatus.CRASHED
    failure = seen[-1]
    assert failure.event == "process_restart_failed"
    assert failure.type == "error-event"
    assert failure.priority is EventPriority.CRITICAL

    # crashed processes are left out of later sweeps
    assert await manager.monitor_health(now) == []


@pytest.mark.asyncio
async def test_system_health():
    manager, _ = make_manager()
    a = await manager.spawn("agent-a", {"resources": {"memory": "1MB"}})
    b = await manager.spawn("agent-b")
    await manager.pause(b)
    await manager.monitor_health()

    health = manager.get_system_health()

    assert health.total_processes == 2
    assert health.running_processes == 1
    assert health.healthy_processes == 2
    assert health.resource_allocations == 1
    assert health.system_load == 50.0
    assert manager.get_process(a) is not None


@pytest.mark.asyncio
async def test_resource_requests_through_manager():
    manager, _ = make_manager()
    pid = await manager.spawn("agent-1")

    allocation = await manager.request_resources({"memory": "256MB"}, owner_pid=pid)
    assert manager.get_process(pid).resource_allocations == [allocation.allocation_id]

    await manager.update_usage(allocation.allocation_id, {"memory": 0.5})
    assert manager.resources.get(allocation.allocation_id).usage == {"memory": 0.5}

    await manager.release_resources(allocation.allocation_id)
    assert manager.get_process(pid).resource_allocations == []
    await manager.release_resources(allocation.allocation_id)


@pytest.mark.asyncio
async def test_process_task_contract():
    manager, _ = make_manager()

    pid = await manager.process_task({"type": "spawn_process", "data": {"agentId": "agent-1"}})
    info = await manager.process_task(TaskRequest(type="get_process_info", data={"pid": pid}))
    assert info.agent_id == "agent-1"

    await manager.process_task({"type": "pause_process", "data": {"pid": pid}})
    paused = await manager.process_task(
        {"type": "list_processes", "data": {"filter": {"status": "paused"}}}
    )
    assert [p.pid for p in paused] == [pid]

    await manager.process_task({"type": "resume_process", "data": {"pid": pid}})
    await manager.process_task({"type": "restart_process", "data": {"pid": pid}})
    reports = await manager.process_task({"type": "monitor_health", "data": {}})
    assert len(reports) == 1
    await manager.process_task({"type": "terminate_process", "data": {"pid": pid}})
    assert manager.get_process(pid).status is ProcessStatus.STOPPED

    with pytest.raises(UnknownTaskTypeError, match="Unknown task type: reboot"):
        await manager.process_task({"type": "reboot", "data": {}})


@pytest.mark.asyncio
async def test_handle_message_spawn_and_terminate():
    manager, _ = make_manager()

    def request(type, **data):
        return AgentMessage(
            from_agent_id="client-001",
            to_agent_id=manager.agent_id,
            type=type,
            data=data,
            requires_response=True,
        )

    spawned = await manager.handle_message(
        request("process-spawn-request", agentId="agent-1", config={"name": "worker"})
    )
    assert spawned.type == "process-spawn-response"
    assert spawned.data["success"] is True
    pid = spawned.data["pid"]
    assert manager.get_process(pid).name == "worker"

    terminated = await manager.handle_message(request("process-terminate-request", pid=pid))
    assert terminated.data == {"success": True}

    again = await manager.handle_message(request("process-terminate-request", pid=pid))
    assert again.data["success"] is False
    assert "stopped" in again.data["error"]

    failed = await manager.handle_message(
        request("process-spawn-request", agentId="agent-2", config={"parent_pid": "proc-x"})
    )
    assert failed.data["success"] is False
    assert "proc-x" in failed.data["error"]


@pytest.mark.asyncio
async def test_handle_message_health_check():
    manager, _ = make_manager()
    pid = await manager.spawn("agent-1")

    reply = await manager.handle_message(
        AgentMessage(
            from_agent_id="monitor-001",
            to_agent_id=manager.agent_id,
            type="health-check-request",
        )
    )

    assert reply.type == "health-check-response"
    (report,) = reply.data["healthReports"]
    assert report["pid"] == pid
    assert report["status"] == "healthy"
    assert await manager.handle_message(
        AgentMessage(from_agent_id="x", to_agent_id=manager.agent_id, type="noise")
    ) is None
