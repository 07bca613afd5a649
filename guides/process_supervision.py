"""Example showing process trees, resource grants and the health monitor."""

import asyncio

from agentric import ProcessManager
from agentric.config import ProcessSettings
from agentric.process import SpawnConfig


async def main():
    manager = ProcessManager(
        settings=ProcessSettings(restart_settle_delay=0.1, health_sweep_interval=0.5)
    )
    manager.events.subscribe("*", lambda e: print(f"📣 {e.event} {e.data.get('pid')}"))

    coordinator = await manager.spawn(
        "learning-coordinator-001",
        SpawnConfig(name="coordinator", resources={"memory": "512MB", "compute": "high"}),
    )
    await manager.spawn(
        "content-generator-001",
        SpawnConfig(parent_pid=coordinator, resources={"memory": "256MB", "storage": "1GB"}),
    )

    monitor = manager.start_health_monitor()
    await asyncio.sleep(1.2)
    await manager.stop_health_monitor()
    print(f"🩺 Sweeps run: {monitor.sweeps}")
    print(f"📊 {manager.get_system_health().model_dump()}")

    # Children are stopped before their parent; allocations are returned
    await manager.terminate(coordinator)
    print(f"✅ Allocations left: {len(manager.resources.allocations)}")


if __name__ == "__main__":
    asyncio.run(main())
