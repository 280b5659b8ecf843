"""Tests for workflow JSON schema validation and loading."""

import copy

import jsonschema
import pytest

from agentrelay.domain.exceptions import WorkflowDefinitionError
from agentrelay.domain.models import ExecutionStrategy
from agentrelay.schemas import (
    get_workflow_schema,
    load_quality_gates,
    load_workflow,
    validate_workflow,
)

WORKFLOW = {
    "workflow_id": "feature-login",
    "name": "Login",
    "default_strategy": "sequential",
    "phases": [
        {
            "name": "design",
            "steps": [
                {
                    "id": "api",
                    "capabilityQuery": {"category": "design", "tags": ["api"]},
                    "compensatingAction": "discard",
                    "timeout": 30,
                }
            ],
        },
        {
            "name": "release",
            "strategy": "domainChain",
            "steps": [
                {
                    "id": "package",
                    "capabilityQuery": {"category": "deployment", "outputs": ["wheel"]},
                    "inputs": {"spec": "api", "routes": "api.routes"},
                    "subtasks": [{"capabilityQuery": {"category": "build"}}],
                    "agent": "packager",
                }
            ],
        },
    ],
    "qualityGates": [
        {
            "name": "review",
            "validators": ["lint"],
            "concerns": ["security"],
            "afterPhase": "design",
        }
    ],
}


def _discard(step_id, result, context):
    return None


class TestValidateWorkflow:
    def test_schema_loads(self) -> None:
        schema = get_workflow_schema()

        assert schema["title"] == "agentrelay workflow definition"

    def test_valid_document(self) -> None:
        validate_workflow(WORKFLOW)

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: d.pop("phases"),
            lambda d: d["phases"].clear(),
            lambda d: d.update(default_strategy="random"),
            lambda d: d["phases"][0]["steps"][0].pop("capabilityQuery"),
            lambda d: d["phases"][0]["steps"][0].update(timeout=0),
            lambda d: d["phases"][1]["steps"][0].update(inputs={"x": "a.b.c"}),
            lambda d: d.update(extra=True),
        ],
    )
    def test_invalid_documents(self, mutate) -> None:  # noqa: ANN001
        data = copy.deepcopy(WORKFLOW)
        mutate(data)

        with pytest.raises(jsonschema.ValidationError):
            validate_workflow(data)


class TestLoadWorkflow:
    def test_builds_definition(self) -> None:
        definition = load_workflow(WORKFLOW, actions={"discard": _discard})

        assert definition.workflow_id == "feature-login"
        assert definition.default_strategy is ExecutionStrategy.SEQUENTIAL
        design, release = definition.phases
        assert design.strategy is None
        assert release.strategy is ExecutionStrategy.DOMAIN_CHAIN

        api = definition.get_step("api")
        assert api.compensate is _discard
        assert api.timeout == 30
        assert api.requirements.tags == ("api",)

        package = definition.get_step("package")
        assert package.inputs == (("spec", "api"), ("routes", "api.routes"))
        assert package.predecessors == ("api",)
        assert package.subtasks[0].requirements.category == "build"
        assert package.agent == "packager"

    def test_unknown_action(self) -> None:
        with pytest.raises(WorkflowDefinitionError, match="discard"):
            load_workflow(WORKFLOW)

    def test_quality_gates(self) -> None:
        (gate,) = load_quality_gates(WORKFLOW)

        assert gate.name == "review"
        assert gate.validators == ("lint",)
        assert gate.concerns == ("security",)
        assert gate.after_phase == "design"
