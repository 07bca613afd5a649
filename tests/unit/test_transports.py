"""Transport tests."""

import asyncio

import pytest

from agentric.contracts import AgentMessage, SystemEvent
from agentric.transports import get_transport
from agentric.transports.inmemory import InMemoryTransport


@pytest.mark.asyncio
async def test_inmemory_transport_basic():
    """Test basic InMemoryTransport publish/subscribe."""
    transport = InMemoryTransport()

    message = AgentMessage(
        from_agent_id="client-001",
        to_agent_id="workflow-orchestrator-001",
        type="workflow-status-request",
        data={"workflowId": "workflow-123"},
    )
    await transport.publish("workflow-orchestrator-001", message)
    assert transport.pending("workflow-orchestrator-001") == 1

    message_received = False
    async for raw_msg, received_msg in transport.subscribe("workflow-orchestrator-001"):
        assert received_msg.id == message.id
        assert received_msg.data["workflowId"] == "workflow-123"

        await transport.ack(raw_msg)
        message_received = True
        break

    assert message_received
    assert transport.pending("workflow-orchestrator-001") == 0


@pytest.mark.asyncio
async def test_inmemory_subscribe_respects_lifespan():
    transport = InMemoryTransport()
    await transport.publish("system-events", SystemEvent(source="pm", data={"event": "x"}))

    received = []
    async for _, event in transport.subscribe("system-events", lifespan=0.3, model=SystemEvent):
        received.append(event)

    assert [e.event for e in received] == ["x"]


def test_redis_topics_map_to_prefixed_lists():
    from agentric.transports.redis import RedisTransport, queue_key

    transport = RedisTransport(host="broker.internal")

    assert queue_key("system-events") == "agentric:system-events"
    assert (transport.host, transport.port, transport.db) == ("broker.internal", 6379, 0)


@pytest.mark.asyncio
async def test_subscriber_wakes_when_message_published():
    transport = InMemoryTransport()
    received = []

    async def consume():
        async for _, message in transport.subscribe("agent-b", lifespan=2):
            received.append(message.type)
            return

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0.05)
    assert received == []

    ping = AgentMessage(from_agent_id="a", to_agent_id="agent-b", type="ping")
    await transport.publish("agent-b", ping)
    await asyncio.wait_for(consumer, timeout=1)

    assert received == ["ping"]


@pytest.mark.asyncio
async def test_nack_requeues_at_head():
    transport = InMemoryTransport()
    first = AgentMessage(from_agent_id="a", to_agent_id="b", type="first")
    second = AgentMessage(from_agent_id="a", to_agent_id="b", type="second")
    await transport.publish("b", first)
    await transport.publish("b", second)

    async for raw, message in transport.subscribe("b", lifespan=0.1):
        assert message.type == "first"
        await transport.nack(raw)
        break

    seen = []
    async for raw, message in transport.subscribe("b", lifespan=0.1):
        seen.append(message.type)
        await transport.ack(raw)

    assert seen == ["first", "second"]


@pytest.mark.asyncio
async def test_nack_without_requeue_drops_message():
    transport = InMemoryTransport()
    await transport.publish("b", AgentMessage(from_agent_id="a", to_agent_id="b", type="x"))

    async for raw, _ in transport.subscribe("b", lifespan=0.1):
        await transport.nack(raw, requeue=False)

    assert transport.pending("b") == 0


@pytest.mark.asyncio
async def test_send_routes_to_recipient_inbox():
    async with InMemoryTransport() as transport:
        reply = AgentMessage(
            from_agent_id="workflow-orchestrator-001",
            to_agent_id="client-001",
            type="workflow-created",
        )
        await transport.send(reply)

        assert transport.pending("client-001") == 1
        assert transport.pending("workflow-orchestrator-001") == 0


def test_unknown_transport_backend_is_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("AGENTRIC_CONFIG", str(tmp_path / "missing.yaml"))

    with pytest.raises(ValueError, match="Unsupported transport backend: kafka"):
        get_transport("kafka")
