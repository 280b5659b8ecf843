"""agentrelay JSON Schema definitions and workflow loading.

Schemas:
    - workflow.schema.json: Workflow definition (phases, steps, capability
      queries, compensating action names, quality gates)

Usage:
    from agentrelay.schemas import load_workflow

    with open("workflow.json") as f:
        data = json.load(f)
    definition = load_workflow(data, actions={"drop_table": drop_table})
"""

import json
from collections.abc import Mapping
from importlib.resources import files
from typing import Any

import jsonschema

from agentrelay.domain.exceptions import WorkflowDefinitionError
from agentrelay.domain.models import (
    CompensatingAction,
    ExecutionStrategy,
    Phase,
    QualityGate,
    StepDefinition,
    Subtask,
    TaskRequirements,
    WorkflowDefinition,
)


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'workflow.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("agentrelay.schemas").joinpath(name).read_text()
    result: dict[str, Any] = json.loads(schema_text)
    return result


def get_workflow_schema() -> dict[str, Any]:
    """Get the workflow.json schema."""
    return _load_schema("workflow.schema.json")


def validate_workflow(data: dict[str, Any]) -> None:
    """Validate a workflow definition against the schema.

    Args:
        data: Workflow definition dictionary

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_workflow_schema())


def _requirements(query: dict[str, Any]) -> TaskRequirements:
    return TaskRequirements(
        category=query["category"],
        outputs=tuple(query.get("outputs", ())),
        tags=tuple(query.get("tags", ())),
    )


def _step(data: dict[str, Any], actions: Mapping[str, CompensatingAction]) -> StepDefinition:
    action_name = data.get("compensatingAction")
    compensate = None
    if action_name is not None:
        if action_name not in actions:
            raise WorkflowDefinitionError(
                f"Step '{data['id']}' names unknown compensating action '{action_name}'"
            )
        compensate = actions[action_name]
    return StepDefinition(
        step_id=data["id"],
        requirements=_requirements(data["capabilityQuery"]),
        depends_on=tuple(data.get("dependsOn", ())),
        compensate=compensate,
        instructions=data.get("instructions", ""),
        timeout=data.get("timeout"),
        inputs=tuple(data.get("inputs", {}).items()),
        subtasks=tuple(
            Subtask(
                requirements=_requirements(sub["capabilityQuery"]),
                instructions=sub.get("instructions", ""),
            )
            for sub in data.get("subtasks", ())
        ),
        agent=data.get("agent"),
    )


def load_workflow(
    data: dict[str, Any],
    actions: Mapping[str, CompensatingAction] | None = None,
) -> WorkflowDefinition:
    """Validate a workflow definition and build its domain model.

    Args:
        data: Workflow definition dictionary
        actions: Compensating actions by the name steps refer to

    Raises:
        jsonschema.ValidationError: If the document violates the schema
        WorkflowDefinitionError: If a compensating action is unknown
    """
    validate_workflow(data)
    actions = actions or {}
    default = data.get("default_strategy")
    return WorkflowDefinition(
        workflow_id=data["workflow_id"],
        name=data.get("name", ""),
        default_strategy=ExecutionStrategy(default) if default else None,
        phases=tuple(
            Phase(
                name=phase["name"],
                strategy=ExecutionStrategy(phase["strategy"]) if "strategy" in phase else None,
                steps=tuple(_step(step, actions) for step in phase["steps"]),
            )
            for phase in data["phases"]
        ),
    )


def load_quality_gates(data: dict[str, Any]) -> tuple[QualityGate, ...]:
    """Build the quality gates declared alongside a workflow.

    Raises:
        jsonschema.ValidationError: If the document violates the schema
    """
    validate_workflow(data)
    return tuple(
        QualityGate(
            name=gate["name"],
            validators=tuple(gate["validators"]),
            criteria=tuple(gate.get("criteria", ())),
            concerns=tuple(gate.get("concerns", ())),
            after_phase=gate.get("afterPhase"),
        )
        for gate in data.get("qualityGates", ())
    )


__all__ = [
    "get_workflow_schema",
    "validate_workflow",
    "load_workflow",
    "load_quality_gates",
]
