"""Tests for workflow event store implementations."""

import json

import pytest

from agentrelay.domain.workflow_event import WorkflowEvent, WorkflowEventType
from agentrelay.infrastructure.persistence.workflow_events import (
    FilesystemWorkflowEventStore,
    InMemoryWorkflowEventStore,
)


def make_event(
    sequence: int = 1,
    execution_id: str = "run-1",
    workflow_id: str = "wf-1",
    event_type: WorkflowEventType = WorkflowEventType.STEP_START,
    step_id: str | None = "step1",
    created_at: str = "2025-01-01T00:00:00+00:00",
    **kwargs,
) -> WorkflowEvent:
    """Create a test workflow event."""
    return WorkflowEvent(
        event_id=f"evt-{execution_id}-{sequence}",
        event_type=event_type,
        workflow_id=workflow_id,
        execution_id=execution_id,
        sequence=sequence,
        step_id=step_id,
        created_at=created_at,
        **kwargs,
    )


@pytest.fixture(params=["memory", "filesystem"])
def store(request, tmp_path):  # noqa: ANN001
    """Both store implementations behind the same port."""
    if request.param == "memory":
        return InMemoryWorkflowEventStore()
    return FilesystemWorkflowEventStore(tmp_path / "traces")


class TestWorkflowEventStore:
    """Behaviour shared by every store."""

    def test_store_and_retrieve_event(self, store) -> None:  # noqa: ANN001
        """Store and retrieve events."""
        event = make_event()

        event_id = store.store_event(event)

        assert event_id == event.event_id
        assert store.get_events("run-1") == [event]

    def test_filters_by_run(self, store) -> None:  # noqa: ANN001
        store.store_event(make_event(execution_id="run-1"))
        store.store_event(make_event(execution_id="run-2"))

        events = store.get_events("run-1")

        assert [e.execution_id for e in events] == ["run-1"]

    def test_runs_listed_per_workflow(self, store) -> None:  # noqa: ANN001
        store.store_event(
            make_event(execution_id="run-b", created_at="2025-01-01T00:00:01+00:00")
        )
        store.store_event(
            make_event(execution_id="run-a", created_at="2025-01-01T00:00:02+00:00")
        )
        store.store_event(make_event(execution_id="run-x", workflow_id="wf-2"))

        assert store.execution_ids("wf-1") == ["run-b", "run-a"]
        assert store.execution_ids("wf-2") == ["run-x"]
        assert store.execution_ids("nope") == []

    def test_filters_by_event_type(self, store) -> None:  # noqa: ANN001
        store.store_event(make_event(1, event_type=WorkflowEventType.STEP_START))
        store.store_event(make_event(2, event_type=WorkflowEventType.STEP_COMPLETE))

        events = store.get_events("run-1", event_type=WorkflowEventType.STEP_START)

        assert [e.sequence for e in events] == [1]

    def test_filters_by_step_id(self, store) -> None:  # noqa: ANN001
        store.store_event(make_event(1, step_id="step1"))
        store.store_event(make_event(2, step_id="step2"))

        events = store.get_events("run-1", step_id="step2")

        assert [e.step_id for e in events] == ["step2"]

    def test_sorted_by_sequence(self, store) -> None:  # noqa: ANN001
        for sequence in (3, 1, 2):
            store.store_event(make_event(sequence))

        assert [e.sequence for e in store.get_events("run-1")] == [1, 2, 3]

    def test_escalation_events(self, store) -> None:  # noqa: ANN001
        store.store_event(make_event(1))
        store.store_event(
            make_event(2, event_type=WorkflowEventType.ESCALATE, summary="AgentError: disk full")
        )

        escalations = store.get_escalation_events("run-1")

        assert len(escalations) == 1
        assert escalations[0].summary == "AgentError: disk full"

    def test_unknown_run_is_empty(self, store) -> None:  # noqa: ANN001
        assert store.get_events("nope") == []


class TestFilesystemWorkflowEventStore:
    """Tests for the JSONL layout."""

    def test_one_file_per_run(self, tmp_path) -> None:  # noqa: ANN001
        store = FilesystemWorkflowEventStore(tmp_path)
        store.store_event(make_event(workflow_id="wf-a", execution_id="run-1"))
        store.store_event(make_event(workflow_id="wf-a", execution_id="run-2"))
        store.store_event(make_event(workflow_id="wf-b", execution_id="run-3"))

        assert store.workflow_ids() == ["wf-a", "wf-b"]
        lines = (tmp_path / "events" / "wf-a" / "run-2.jsonl").read_text().splitlines()
        assert json.loads(lines[0])["execution_id"] == "run-2"
        assert json.loads(lines[0])["event_type"] == "STEP_START"

    def test_all_fields_survive(self, tmp_path) -> None:  # noqa: ANN001
        store = FilesystemWorkflowEventStore(tmp_path)
        event = make_event(
            event_type=WorkflowEventType.GATE_EVALUATED,
            step_id=None,
            gate_name="review",
            passed=False,
            depends_on=("a", "b"),
            failed_validators=("lint",),
            indeterminate=("scan",),
            details=("lint: E501",),
            duration=1.25,
            attempt=2,
        )
        failure = make_event(
            2,
            event_type=WorkflowEventType.STEP_FAIL,
            error_type="StepTimeoutError",
            summary="timed out",
        )
        store.store_event(event)
        store.store_event(failure)

        reopened = FilesystemWorkflowEventStore(tmp_path)

        assert reopened.get_events("run-1") == [event, failure]

    def test_blank_lines_ignored(self, tmp_path) -> None:  # noqa: ANN001
        store = FilesystemWorkflowEventStore(tmp_path)
        store.store_event(make_event())
        with open(tmp_path / "events" / "wf-1" / "run-1.jsonl", "a") as f:
            f.write("\n")

        assert len(store.get_events("run-1")) == 1
