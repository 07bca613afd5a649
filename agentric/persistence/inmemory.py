"""Repository that keeps everything in dictionaries."""

from __future__ import annotations

from collections import defaultdict
from typing import DefaultDict, Dict, List, Optional

from ..workflow.models import Workflow, WorkflowExecution
from .models import WorkflowRecord


class InMemoryWorkflowRepository:
    """Default backend when no database URL is configured.

    Objects are deep-copied on the way in and out, so later mutations by the
    orchestrator never leak into stored state.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[str, Workflow] = {}
        self._history: DefaultDict[str, List[WorkflowExecution]] = defaultdict(list)

    async def save_workflow(self, workflow: Workflow) -> None:
        self._snapshots[workflow.id] = workflow.model_copy(deep=True)

    async def save_execution(self, execution: WorkflowExecution) -> None:
        self._history[execution.workflow_id].append(execution.model_copy(deep=True))

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowRecord]:
        if workflow_id not in self._snapshots:
            return None
        record = WorkflowRecord(
            workflow=self._snapshots[workflow_id],
            executions=self._history.get(workflow_id, []),
        )
        return record.model_copy(deep=True)

    async def list_workflows(self, status: Optional[str] = None) -> List[WorkflowRecord]:
        return [
            WorkflowRecord(workflow=snapshot.model_copy(deep=True))
            for snapshot in self._snapshots.values()
            if status is None or snapshot.status.value == status
        ]

    def close(self) -> None:
        """Nothing to release."""
