"""Data models for persisted workflow state."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from ..workflow.models import Workflow, WorkflowExecution


class WorkflowRecord(BaseModel):
    """Latest workflow snapshot plus every execution recorded for it."""

    workflow: Workflow
    executions: List[WorkflowExecution] = Field(default_factory=list)

    @property
    def workflow_id(self) -> str:
        return self.workflow.id

    @property
    def status(self) -> str:
        return self.workflow.status.value
