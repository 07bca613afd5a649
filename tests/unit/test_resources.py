"""Resource manager tests."""

from datetime import timedelta

import pytest

from agentric.errors import ResourceAllocationError
from agentric.process import ComputeLevel, ResourceManager, ResourceRequest, parse_size


def test_parse_size_units():
    assert parse_size("512") == 512
    assert parse_size("1KB") == 1024
    assert parse_size("512MB") == 512 * 1024**2
    assert parse_size("1.5gb") == int(1.5 * 1024**3)
    assert parse_size("1TB") == 1024**4


def test_parse_size_rejects_garbage():
    with pytest.raises(ResourceAllocationError):
        parse_size("lots")


def test_request_grants_everything_requested():
    manager = ResourceManager()

    allocation = manager.request(
        ResourceRequest(
            memory="512MB", compute=ComputeLevel.HIGH, storage="1GB", network=True
        ),
        owner_pid="proc-1",
    )

    assert allocation.allocation_id.startswith("alloc-")
    assert allocation.owner_pid == "proc-1"
    assert allocation.memory.bytes == 512 * 1024**2
    assert allocation.compute.priority == 8
    assert allocation.compute.threads == 4
    assert allocation.compute.cpu_quota == 80
    assert allocation.storage.path.endswith(allocation.allocation_id)
    assert allocation.network is not None
    assert manager.pools["memory"].allocated == 512 * 1024**2
    assert manager.get(allocation.allocation_id) is allocation


def test_request_is_all_or_nothing():
    manager = ResourceManager(memory_capacity="1GB", memory_reserved="0GB")

    with pytest.raises(ResourceAllocationError):
        manager.request(ResourceRequest(memory="2GB", storage="1GB"))

    assert manager.allocations == {}
    assert manager.pools["storage"].allocated == 0


def test_release_returns_capacity():
    manager = ResourceManager(memory_capacity="1GB", memory_reserved="0GB")
    allocation = manager.request(ResourceRequest(memory="1GB"))

    with pytest.raises(ResourceAllocationError):
        manager.request(ResourceRequest(memory="1MB"))

    assert manager.release(allocation.allocation_id) is True
    assert manager.pools["memory"].available == 1024**3
    assert manager.release(allocation.allocation_id) is False
    assert manager.release("alloc-unknown") is False


def test_update_usage():
    manager = ResourceManager()
    allocation = manager.request(ResourceRequest(memory="1MB"))

    assert manager.update_usage(allocation.allocation_id, {"memory": 0.4}) is True
    assert manager.get(allocation.allocation_id).usage == {"memory": 0.4}
    assert manager.update_usage("alloc-unknown", {"memory": 1}) is False


def test_expired_lists_but_does_not_reclaim():
    manager = ResourceManager()
    short = manager.request(ResourceRequest(memory="1MB", duration_ms=1000))
    manager.request(ResourceRequest(memory="1MB"))

    later = short.allocated_at + timedelta(seconds=2)

    assert [a.allocation_id for a in manager.expired(later)] == [short.allocation_id]
    assert short.allocation_id in manager.allocations
