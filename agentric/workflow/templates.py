"""Workflow template registry and the built-in templates."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..contracts import Priority
from ..errors import TemplateNotFoundError
from .models import StepBlueprint, Workflow, WorkflowStep, WorkflowTemplate

logger = logging.getLogger(__name__)


class TemplateRegistry:
    """Catalog of named workflow blueprints."""

    def __init__(self, templates: Optional[Dict[str, WorkflowTemplate]] = None) -> None:
        self._templates: Dict[str, WorkflowTemplate] = {}
        for name, template in (templates or {}).items():
            self.register(name, template)

    @classmethod
    def with_defaults(cls) -> "TemplateRegistry":
        return cls(default_templates())

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    def register(self, name: str, template: WorkflowTemplate) -> None:
        """Store ``template`` under ``name``. Names cannot be reused."""
        if name in self._templates:
            raise ValueError(f"Workflow template already registered: {name}")
        self._templates[name] = template
        logger.debug(f"Registered workflow template {name} ({len(template.steps)} steps)")

    def get(self, name: str) -> WorkflowTemplate:
        try:
            return self._templates[name]
        except KeyError:
            raise TemplateNotFoundError(name) from None

    def names(self) -> List[str]:
        return list(self._templates)

    def instantiate(
        self,
        name: str,
        parameters: Optional[Dict[str, Any]] = None,
        default_timeout_ms: Optional[int] = None,
    ) -> Workflow:
        """Create a fresh :class:`Workflow` from the template ``name``.

        ``parameters`` are injected into every step's input; a ``priority``
        entry sets the workflow priority (default ``medium``).
        ``default_timeout_ms`` applies to blueprints that do not set their own.
        """
        template = self.get(name)
        parameters = dict(parameters or {})
        priority = Priority(parameters.get("priority", Priority.MEDIUM))

        steps = []
        for blueprint in template.steps:
            timeout_ms = blueprint.timeout_ms
            if default_timeout_ms and "timeout_ms" not in blueprint.model_fields_set:
                timeout_ms = default_timeout_ms
            steps.append(
                WorkflowStep(
                    id=blueprint.id,
                    action=blueprint.action,
                    required_capability=blueprint.required_capability,
                    input_data=blueprint.build_input(parameters),
                    dependencies=blueprint.dependencies,
                    timeout_ms=timeout_ms,
                )
            )
        return Workflow(
            name=template.name,
            description=template.description,
            template_name=name,
            priority=priority,
            steps=steps,
        )


def default_templates() -> Dict[str, WorkflowTemplate]:
    """The workflows shipped with the platform."""
    return {
        "learning_assessment": WorkflowTemplate(
            name="Comprehensive Learning Assessment",
            description="Analyzes user learning progress and generates recommendations",
            steps=(
                StepBlueprint(
                    id="analyze_behavior",
                    action="Analyze user behavior patterns",
                    required_capability="behavior-analysis",
                    timeout_ms=30_000,
                    defaults={"analysisType": "behavior_patterns"},
                ),
                StepBlueprint(
                    id="assess_progress",
                    action="Assess learning progress",
                    required_capability="learning-assessment",
                    dependencies=("analyze_behavior",),
                    timeout_ms=20_000,
                    defaults={"assessmentType": "comprehensive"},
                ),
                StepBlueprint(
                    id="generate_insights",
                    action="Generate learning insights",
                    required_capability="data-analysis",
                    dependencies=("assess_progress",),
                    timeout_ms=15_000,
                ),
                StepBlueprint(
                    id="create_recommendations",
                    action="Create personalized recommendations",
                    required_capability="learning-assessment",
                    dependencies=("generate_insights",),
                    timeout_ms=10_000,
                ),
            ),
        ),
        "content_adaptation": WorkflowTemplate(
            name="Adaptive Content Generation",
            description="Creates and optimizes content based on user preferences",
            steps=(
                StepBlueprint(
                    id="analyze_preferences",
                    action="Analyze user preferences",
                    required_capability="behavior-analysis",
                    timeout_ms=20_000,
                ),
                StepBlueprint(
                    id="generate_content",
                    action="Generate base content",
                    required_capability="content-generation",
                    dependencies=("analyze_preferences",),
                    timeout_ms=30_000,
                    defaults={"contentType": "general"},
                    parameters={"contentType": "activityType"},
                ),
                StepBlueprint(
                    id="adapt_difficulty",
                    action="Adapt content difficulty",
                    required_capability="difficulty-adaptation",
                    dependencies=("generate_content",),
                    timeout_ms=15_000,
                    defaults={"targetDifficulty": "medium"},
                    parameters={"targetDifficulty": "difficulty"},
                ),
                StepBlueprint(
                    id="optimize_sensory",
                    action="Optimize for sensory preferences",
                    required_capability="sensory-optimization",
                    dependencies=("adapt_difficulty",),
                    timeout_ms=20_000,
                ),
            ),
        ),
        "error_resolution": WorkflowTemplate(
            name="Intelligent Error Resolution",
            description="Analyzes and resolves errors with child-friendly communication",
            steps=(
                StepBlueprint(
                    id="analyze_error",
                    action="Analyze error context and impact",
                    required_capability="error-handling",
                    timeout_ms=10_000,
                ),
                StepBlueprint(
                    id="generate_fix",
                    action="Generate safe fix solution",
                    required_capability="error-handling",
                    dependencies=("analyze_error",),
                    timeout_ms=15_000,
                ),
                StepBlueprint(
                    id="validate_safety",
                    action="Validate fix safety",
                    required_capability="error-handling",
                    dependencies=("generate_fix",),
                    timeout_ms=5_000,
                ),
                StepBlueprint(
                    id="implement_fix",
                    action="Implement validated fix",
                    required_capability="error-handling",
                    dependencies=("validate_safety",),
                    timeout_ms=20_000,
                ),
            ),
        ),
        "agent_creation": WorkflowTemplate(
            name="Dynamic Agent Creation",
            description="Creates specialized agents based on requirements",
            steps=(
                StepBlueprint(
                    id="analyze_requirements",
                    action="Analyze agent requirements",
                    required_capability="data-analysis",
                    timeout_ms=15_000,
                ),
                StepBlueprint(
                    id="design_agent",
                    action="Design agent architecture",
                    required_capability="agent-design",
                    dependencies=("analyze_requirements",),
                    timeout_ms=30_000,
                ),
                StepBlueprint(
                    id="generate_code",
                    action="Generate agent code",
                    required_capability="code-generation",
                    dependencies=("design_agent",),
                    timeout_ms=45_000,
                ),
                StepBlueprint(
                    id="test_agent",
                    action="Test agent functionality",
                    required_capability="agent-testing",
                    dependencies=("generate_code",),
                    timeout_ms=25_000,
                ),
                StepBlueprint(
                    id="deploy_agent",
                    action="Deploy agent to ecosystem",
                    required_capability="agent-deployment",
                    dependencies=("test_agent",),
                    timeout_ms=20_000,
                ),
            ),
        ),
    }
