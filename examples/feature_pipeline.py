#!/usr/bin/env python3
"""
Feature delivery pipeline using MockAgent.

Loads a declarative workflow (sequential design, parallel build, release
domain chain), runs it against scripted agents and prints the report. The
frontend agent first reports missing context, so the run shows enhanced
retry at work.

Run with: python examples/feature_pipeline.py [--trace-dir output/traces] [-v]
"""

import click
import json
import logging
from pathlib import Path

from agentrelay import (
    AgentDescriptor,
    ContextInsufficientError,
    FeatureSpec,
    WorkflowContext,
    WorkflowOrchestrator,
)
from agentrelay.infrastructure import (
    FilesystemWorkflowEventStore,
    MockValidator,
    build_capability_registry,
    render_report,
)
from agentrelay.schemas import load_quality_gates, load_workflow

logger = logging.getLogger("feature_pipeline")


def discard(step_id, result, context) -> None:
    logger.info("Compensating %s (artifact from %s)", step_id, result.agent_name)


@click.command()
@click.option(
    "--trace-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Persist workflow events to this directory",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every step transition")
def main(trace_dir: Path | None, verbose: bool) -> None:
    """Run the feature pipeline demo."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(name)s %(levelname)s %(message)s",
    )

    data = json.loads((Path(__file__).parent / "feature_pipeline.json").read_text())
    definition = load_workflow(data, actions={"discard_design": discard, "revert_branch": discard})

    registry = build_capability_registry(
        [
            (
                AgentDescriptor("analyst", strengths=frozenset({"analysis"}), output_formats=("markdown",)),
                "MockAgent",
                {"name": "analyst"},
            ),
            (
                AgentDescriptor("architect", strengths=frozenset({"design"}), capabilities=frozenset({"api"})),
                "MockAgent",
                {"name": "architect", "delay": 0.05},
            ),
            (
                AgentDescriptor("python-dev", strengths=frozenset({"implementation"}), domain_tags=frozenset({"python"})),
                "MockAgent",
                {"name": "python-dev", "delay": 0.2},
            ),
            (
                AgentDescriptor(
                    "web-dev",
                    strengths=frozenset({"implementation"}),
                    domain_tags=frozenset({"typescript"}),
                    limitations=frozenset({"deployment"}),
                ),
                "MockAgent",
                {
                    "name": "web-dev",
                    "delay": 0.2,
                    "responses": [
                        ContextInsufficientError("need a style guide", missing_fields=("style_guide",)),
                        "login form",
                    ],
                },
            ),
            (
                AgentDescriptor("ops", strengths=frozenset({"deployment", "documentation"})),
                "MockAgent",
                {"name": "ops"},
            ),
        ]
    )

    context = WorkflowContext(
        feature=FeatureSpec(
            "F-42", "Password login", acceptance_criteria=("Users can log in with a password",)
        ),
        domain_constraints={"language": "python"},
        quality_gates=load_quality_gates(data),
        cross_cutting_concerns={"security": ("Hash passwords with a slow KDF",)},
    )

    orchestrator = WorkflowOrchestrator(
        registry,
        validators={"lint": MockValidator(), "security": MockValidator(details="no findings")},
        event_store=FilesystemWorkflowEventStore(trace_dir) if trace_dir else None,
        context_provider=lambda name, ctx: "house style v2" if name == "style_guide" else None,
    )

    plan = orchestrator.plan(definition)
    click.echo(f"Dispatch groups: {plan.groups}")
    click.echo(f"Estimated duration: {plan.estimated_duration:.2f}s\n")

    execution = orchestrator.execute(definition, context)
    click.echo(f"\nRun {execution.execution_id}: {execution.status.value}")
    render_report(orchestrator.monitor.report(execution.execution_id))


if __name__ == "__main__":
    main()
