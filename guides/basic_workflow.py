"""Simple example showing a built-in workflow run end to end."""

import asyncio

from agentric import CapabilityRegistry, WorkflowOrchestrator, get_transport
from agentric.dispatch import register_simulated_handlers
from agentric.events import EventEmitter


async def main():
    """Run the content adaptation workflow against simulated handlers."""
    capabilities = CapabilityRegistry()
    register_simulated_handlers(capabilities, latency=0.1)

    # Lifecycle events are published on the transport while it is open
    async with get_transport() as transport:
        orchestrator = WorkflowOrchestrator(
            capabilities=capabilities,
            events=EventEmitter(transport),
            transport=transport,
        )

        workflow_id = await orchestrator.create_workflow(
            "content_adaptation",
            {"userId": "user-42", "activityType": "story", "difficulty": "easy"},
        )
        print(f"📋 Workflow ID: {workflow_id}")
        print(f"🔗 Order: {orchestrator.get_execution_order(workflow_id)}")

        execution = await orchestrator.execute_workflow(workflow_id)

    print(f"✅ Workflow finished: {execution.status.value}")
    for step in execution.steps:
        print(f"  - {step.step_id}: {step.status.value} via {step.agent_id}")


if __name__ == "__main__":
    asyncio.run(main())
