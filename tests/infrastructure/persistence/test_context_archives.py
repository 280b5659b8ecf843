"""Tests for context archive implementations."""

import json

import pytest

from agentrelay.domain.models import (
    AgentResult,
    ContextStatus,
    ExecutionStatus,
    FeatureSpec,
    WorkflowContext,
    WorkflowExecution,
)
from agentrelay.infrastructure.persistence.filesystem import FilesystemContextArchive
from agentrelay.infrastructure.persistence.memory import InMemoryContextArchive


@pytest.fixture(params=["memory", "filesystem"])
def archive(request, tmp_path):  # noqa: ANN001
    if request.param == "memory":
        return InMemoryContextArchive()
    return FilesystemContextArchive(tmp_path / "archive")


def _finished(
    context: WorkflowContext,
    execution_id: str = "run-1",
    status: ExecutionStatus = ExecutionStatus.SUCCEEDED,
    started_at: str = "2025-01-01T00:00:00+00:00",
) -> WorkflowExecution:
    return WorkflowExecution(
        workflow_id="wf-1",
        context=context,
        execution_id=execution_id,
        status=status,
        started_at=started_at,
        ended_at="2025-01-01T00:01:00+00:00",
    )


@pytest.fixture
def finished_context(context: WorkflowContext) -> WorkflowContext:
    context.commit_artifact(
        "impl", AgentResult(agent_name="coder", content="code", outputs={"files": ["a.py"]})
    )
    context.archive()
    return context


class TestContextArchive:
    def test_store_and_get(self, archive, finished_context: WorkflowContext) -> None:  # noqa: ANN001
        archive.store(_finished(finished_context))

        record = archive.get("run-1")

        assert record["execution_id"] == "run-1"
        assert record["workflow_id"] == "wf-1"
        assert record["outcome"] == "succeeded"
        assert record["context"]["status"] == ContextStatus.ARCHIVED.value
        assert record["context"]["artifacts"]["impl"]["content"] == "code"
        assert record["stored_at"]

    def test_runs_of_one_workflow_kept_apart(
        self, archive, finished_context: WorkflowContext, sample_feature: FeatureSpec  # noqa: ANN001
    ) -> None:
        archive.store(_finished(finished_context))
        retry = WorkflowContext(feature=sample_feature)
        retry.mark_failed("failed_compensated: AgentError: bug")
        archive.store(
            _finished(
                retry,
                execution_id="run-2",
                status=ExecutionStatus.FAILED_COMPENSATED,
                started_at="2025-01-01T00:02:00+00:00",
            )
        )

        assert archive.get("run-1")["outcome"] == "succeeded"
        assert archive.get("run-2")["outcome"] == "failed_compensated"
        assert archive.execution_ids("wf-1") == ["run-1", "run-2"]

    def test_missing_raises_key_error(self, archive) -> None:  # noqa: ANN001
        with pytest.raises(KeyError, match="run-missing"):
            archive.get("run-missing")

    def test_snapshot_detached_from_live_context(
        self, archive, finished_context: WorkflowContext  # noqa: ANN001
    ) -> None:
        archive.store(_finished(finished_context))
        finished_context.domain_constraints["language"] = "go"

        assert archive.get("run-1")["context"]["domain_constraints"]["language"] == "python"


class TestFilesystemContextArchive:
    def test_json_on_disk(self, tmp_path, finished_context: WorkflowContext) -> None:  # noqa: ANN001
        archive = FilesystemContextArchive(tmp_path)
        archive.store(_finished(finished_context))

        data = json.loads((tmp_path / "contexts" / "run-1.json").read_text())

        assert data["outcome"] == "succeeded"
        assert archive.execution_ids() == ["run-1"]
        assert not list((tmp_path / "contexts").glob("*.tmp"))

    def test_non_json_content_stored_as_text(self, tmp_path, context: WorkflowContext) -> None:  # noqa: ANN001
        context.commit_artifact("blob", AgentResult(agent_name="coder", content={1, 2}))
        archive = FilesystemContextArchive(tmp_path)

        archive.store(_finished(context, status=ExecutionStatus.FAILED_COMPENSATED))

        assert archive.get("run-1")["context"]["artifacts"]["blob"]["content"] == "{1, 2}"


class TestInMemoryContextArchive:
    def test_contains(self, finished_context: WorkflowContext) -> None:
        archive = InMemoryContextArchive()
        archive.store(_finished(finished_context))

        assert "run-1" in archive
        assert "run-2" not in archive
