"""Failure recovery policy tests."""

from agentric.contracts import Priority
from agentric.workflow import RecoveryAction, Workflow, WorkflowStep, decide_recovery


def _workflow(priority):
    return Workflow(
        name="wf",
        template_name="wf",
        priority=priority,
        steps=[
            WorkflowStep(id="root", action="root", required_capability="x"),
            WorkflowStep(
                id="child", action="child", required_capability="x", dependencies=("root",)
            ),
        ],
    )


def test_root_step_is_retried_regardless_of_priority():
    for priority in Priority:
        workflow = _workflow(priority)
        assert decide_recovery(workflow.get_step("root"), workflow) is RecoveryAction.RETRY


def test_dependent_step_aborts_critical_workflow():
    workflow = _workflow(Priority.CRITICAL)

    assert decide_recovery(workflow.get_step("child"), workflow) is RecoveryAction.ABORT


def test_dependent_step_is_skipped_otherwise():
    for priority in (Priority.LOW, Priority.MEDIUM, Priority.HIGH):
        workflow = _workflow(priority)
        assert decide_recovery(workflow.get_step("child"), workflow) is RecoveryAction.SKIP
