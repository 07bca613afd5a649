"""Workflow templates, dependency scheduling and the execution engine."""

from .models import (
    RecoveryAction,
    StepBlueprint,
    StepExecution,
    StepStatus,
    Workflow,
    WorkflowExecution,
    WorkflowStatus,
    WorkflowStatusReport,
    WorkflowStep,
    WorkflowTemplate,
)
from .graph import DependencyGraph, build_dependency_graph, execution_order
from .recovery import decide_recovery
from .templates import TemplateRegistry, default_templates
from .orchestrator import WorkflowOrchestrator

__all__ = [
    "DependencyGraph",
    "RecoveryAction",
    "StepBlueprint",
    "StepExecution",
    "StepStatus",
    "TemplateRegistry",
    "Workflow",
    "WorkflowExecution",
    "WorkflowOrchestrator",
    "WorkflowStatus",
    "WorkflowStatusReport",
    "WorkflowStep",
    "WorkflowTemplate",
    "build_dependency_graph",
    "decide_recovery",
    "default_templates",
    "execution_order",
]
