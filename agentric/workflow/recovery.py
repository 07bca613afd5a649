"""Failure-recovery policy for workflow steps."""

from __future__ import annotations

from .models import RecoveryAction, Workflow, WorkflowStep
from ..contracts import Priority


def decide_recovery(step: WorkflowStep, workflow: Workflow) -> RecoveryAction:
    """Pick the recovery action for a failed ``step``.

    Root steps are retried, any other failure aborts a critical workflow and
    is skipped otherwise. The decision does not look at previous attempts;
    the orchestrator bounds retries.
    """
    if not step.dependencies:
        return RecoveryAction.RETRY
    if workflow.priority is Priority.CRITICAL:
        return RecoveryAction.ABORT
    return RecoveryAction.SKIP
