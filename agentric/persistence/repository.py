"""Storage contract for workflow snapshots and execution history."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..workflow.models import Workflow, WorkflowExecution
from .models import WorkflowRecord


class WorkflowRepository(Protocol):
    """What the orchestrator and CLI need from a storage backend.

    Saving a workflow replaces its previous snapshot; executions only ever
    accumulate. Records come back as detached copies.
    """

    async def save_workflow(self, workflow: Workflow) -> None: ...

    async def save_execution(self, execution: WorkflowExecution) -> None: ...

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowRecord]:
        """Snapshot and full execution history, or ``None`` when unknown."""

    async def list_workflows(self, status: Optional[str] = None) -> List[WorkflowRecord]:
        """Snapshots in insertion order, narrowed to ``status`` when given.

        Execution history is not loaded.
        """

    def close(self) -> None: ...
