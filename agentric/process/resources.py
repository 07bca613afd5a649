"""Resource grants handed out to tracked processes."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..contracts import utcnow
from ..errors import ResourceAllocationError
from .models import (
    ComputeGrant,
    ComputeLevel,
    MemoryGrant,
    NetworkGrant,
    ResourceAllocation,
    ResourceRequest,
    StorageGrant,
)

logger = logging.getLogger(__name__)

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMGT]?B)?\s*$", re.IGNORECASE)
_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3, "TB": 1024**4}

_COMPUTE_PRIORITY = {
    ComputeLevel.LOW: 1,
    ComputeLevel.MEDIUM: 5,
    ComputeLevel.HIGH: 8,
    ComputeLevel.CRITICAL: 10,
}


def parse_size(value: str) -> int:
    """Convert ``"512MB"``-style sizes to bytes (binary multiples)."""
    match = _SIZE_RE.match(value)
    if not match:
        raise ResourceAllocationError(f"Unparsable size: {value!r}")
    amount, unit = match.groups()
    return int(float(amount) * _UNITS[(unit or "B").upper()])


class ResourcePool(BaseModel):
    """Capacity bookkeeping for one resource kind, in bytes."""

    total: int
    reserved: int = 0
    allocated: int = 0

    @property
    def available(self) -> int:
        return self.total - self.reserved - self.allocated


class ResourceManager:
    """Grants, tracks and releases :class:`ResourceAllocation` handles.

    Memory and storage are drawn from finite pools; compute and network
    grants are descriptive only. Allocations are never reclaimed implicitly,
    including after ``expires_at``; ``expired`` lists them for a caller to
    release.
    """

    def __init__(
        self,
        memory_capacity: str = "16GB",
        memory_reserved: str = "2GB",
        storage_capacity: str = "1TB",
        storage_reserved: str = "100GB",
    ) -> None:
        self.pools: Dict[str, ResourcePool] = {
            "memory": ResourcePool(
                total=parse_size(memory_capacity), reserved=parse_size(memory_reserved)
            ),
            "storage": ResourcePool(
                total=parse_size(storage_capacity), reserved=parse_size(storage_reserved)
            ),
        }
        self._allocations: Dict[str, ResourceAllocation] = {}

    @property
    def allocations(self) -> Dict[str, ResourceAllocation]:
        return dict(self._allocations)

    def get(self, allocation_id: str) -> Optional[ResourceAllocation]:
        return self._allocations.get(allocation_id)

    def request(
        self, spec: ResourceRequest, owner_pid: Optional[str] = None
    ) -> ResourceAllocation:
        """Grant everything in ``spec`` or nothing."""
        memory_bytes = parse_size(spec.memory) if spec.memory else 0
        storage_bytes = parse_size(spec.storage) if spec.storage else 0
        for kind, amount in (("memory", memory_bytes), ("storage", storage_bytes)):
            pool = self.pools[kind]
            if amount > pool.available:
                raise ResourceAllocationError(
                    f"Insufficient {kind}: requested {amount} bytes, "
                    f"{pool.available} available"
                )

        allocation = ResourceAllocation(owner_pid=owner_pid)
        if spec.duration_ms:
            allocation.expires_at = allocation.allocated_at + timedelta(
                milliseconds=spec.duration_ms
            )
        if spec.memory:
            allocation.memory = MemoryGrant(allocated=spec.memory, bytes=memory_bytes)
        if spec.compute:
            priority = _COMPUTE_PRIORITY[spec.compute]
            allocation.compute = ComputeGrant(
                threads=min(4, priority), priority=priority, cpu_quota=priority * 10
            )
        if spec.storage:
            allocation.storage = StorageGrant(
                path=f"/tmp/agent-{allocation.allocation_id}",
                size=spec.storage,
                bytes=storage_bytes,
            )
        if spec.network:
            allocation.network = NetworkGrant()

        self.pools["memory"].allocated += memory_bytes
        self.pools["storage"].allocated += storage_bytes
        self._allocations[allocation.allocation_id] = allocation
        logger.debug(f"Granted {allocation.allocation_id} to {owner_pid or 'system'}")
        return allocation

    def release(self, allocation_id: str) -> bool:
        """Return an allocation's capacity. Unknown ids are ignored."""
        allocation = self._allocations.pop(allocation_id, None)
        if allocation is None:
            return False
        if allocation.memory:
            self.pools["memory"].allocated -= allocation.memory.bytes
        if allocation.storage:
            self.pools["storage"].allocated -= allocation.storage.bytes
        logger.info(f"Released resources {allocation_id}")
        return True

    def update_usage(self, allocation_id: str, usage: Dict[str, Any]) -> bool:
        allocation = self._allocations.get(allocation_id)
        if allocation is None:
            logger.warning(f"Usage reported for unknown allocation {allocation_id}")
            return False
        allocation.usage.update(usage)
        return True

    def expired(self, now: Optional[datetime] = None) -> List[ResourceAllocation]:
        now = now or utcnow()
        return [
            a
            for a in self._allocations.values()
            if a.expires_at is not None and a.expires_at <= now
        ]
