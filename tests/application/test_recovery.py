"""Tests for RecoveryManager strategies and the compensation sweep."""

import queue

import pytest

from agentrelay.application.capability_matcher import CapabilityMatcher
from agentrelay.application.context_manager import ContextPreservationManager
from agentrelay.application.recovery import RecoveryManager
from agentrelay.application.scope import ExecutionScope
from agentrelay.application.workflow_event_emitter import WorkflowEventEmitter
from agentrelay.config import RecoveryPolicy
from agentrelay.domain.exceptions import (
    AgentError,
    CapabilityMismatchError,
    ContextInsufficientError,
    Severity,
    StepTimeoutError,
    TaskComplexityError,
)
from agentrelay.domain.models import (
    AgentDescriptor,
    AgentResult,
    RecoveryStrategy,
    StepDefinition,
    StepStatus,
    Subtask,
    TaskRequirements,
    WorkflowContext,
    WorkflowExecution,
)
from agentrelay.domain.workflow_event import WorkflowEventType
from agentrelay.infrastructure.agents.mock import MockAgent


def _descriptor(name: str, *strengths: str) -> AgentDescriptor:
    return AgentDescriptor(name=name, strengths=frozenset(strengths), capabilities=frozenset(strengths))


def _failed_scope(
    context: WorkflowContext,
    step: StepDefinition,
    agent_name: str,
    run_subgraph=None,
    run_attempt=None,
) -> tuple[ExecutionScope, "queue.Queue"]:
    """Scope in which ``step`` has just failed on its first attempt."""
    channel: queue.Queue = queue.Queue()
    execution = WorkflowExecution(workflow_id="wf-test", context=context)
    record = execution.add_step(step.step_id, "build")
    record.agent_name = agent_name
    record.attempts = 1
    execution.transition(step.step_id, StepStatus.RUNNING)
    execution.transition(step.step_id, StepStatus.FAILED)
    scope = ExecutionScope(
        execution=execution,
        emitter=WorkflowEventEmitter(channel, "wf-test", execution_id=execution.execution_id),
        run_subgraph=run_subgraph or (lambda *args: pytest.fail("unexpected decomposition")),
        run_attempt=run_attempt or (lambda step, call: call()),
    )
    return scope, channel


def _events(channel: "queue.Queue") -> list:
    events = []
    while not channel.empty():
        events.append(channel.get_nowait())
    return events


def _manager(registry, **kwargs) -> RecoveryManager:
    return RecoveryManager(
        CapabilityMatcher(registry), ContextPreservationManager(registry), **kwargs
    )


IMPL = TaskRequirements(category="implementation")


class TestApplicableStrategies:
    @pytest.mark.parametrize(
        "error,expected",
        [
            (ContextInsufficientError("x"), (RecoveryStrategy.ENHANCED_RETRY,)),
            (CapabilityMismatchError("x"), (RecoveryStrategy.ALTERNATE_AGENT,)),
            (TaskComplexityError("x"), (RecoveryStrategy.DECOMPOSITION,)),
            (AgentError("x", Severity.CRITICAL), (RecoveryStrategy.ESCALATION,)),
            (AgentError("x"), ()),
            (StepTimeoutError("s", 1.0), ()),
            (
                ContextInsufficientError("x", severity=Severity.CRITICAL),
                (RecoveryStrategy.ENHANCED_RETRY, RecoveryStrategy.ESCALATION),
            ),
        ],
    )
    def test_strategy_order(self, error: Exception, expected: tuple) -> None:
        assert RecoveryManager.applicable_strategies(error) == expected


class TestEnhancedRetry:
    def test_retry_with_provider_succeeds(self, context: WorkflowContext, make_registry) -> None:
        coder = AgentDescriptor(
            name="coder",
            strengths=frozenset({"implementation"}),
            required_inputs=("style_guide",),
        )
        registry = make_registry(coder)
        step = StepDefinition(step_id="B", requirements=IMPL)
        scope, channel = _failed_scope(context, step, "coder")
        provided = []

        def provider(name: str, ctx: WorkflowContext):
            provided.append(name)
            return "PEP 8"

        manager = _manager(registry, context_provider=provider)
        error = ContextInsufficientError("missing", missing_fields=("style_guide",))

        outcome = manager.handle_failure(step, error, context, scope)

        assert outcome.recovered
        assert outcome.strategy_used is RecoveryStrategy.ENHANCED_RETRY
        assert provided == ["style_guide"]
        assert context.supplements["style_guide"] == "PEP 8"
        assert context.artifacts["B"] is outcome.result
        assert scope.execution.step_history("B") == [
            StepStatus.PENDING,
            StepStatus.RUNNING,
            StepStatus.FAILED,
            StepStatus.RETRYING,
        ]
        record = scope.execution.steps["B"]
        assert record.attempts == 2
        assert record.recovery_strategy is RecoveryStrategy.ENHANCED_RETRY
        assert record.error is None
        assert scope.execution.metrics.recovery_attempts == 1

    def test_enriches_from_prior_outputs(self, context: WorkflowContext, make_registry) -> None:
        coder = AgentDescriptor(
            name="coder", strengths=frozenset({"implementation"}), required_inputs=("api_spec",)
        )
        registry = make_registry(coder)
        context.commit_artifact(
            "A", AgentResult(agent_name="architect", outputs={"api_spec": "POST /login"})
        )
        step = StepDefinition(step_id="B", requirements=IMPL, depends_on=("A",))
        scope, _ = _failed_scope(context, step, "coder")

        outcome = _manager(registry).handle_failure(
            step, ContextInsufficientError("missing", ("api_spec",)), context, scope
        )

        assert outcome.recovered
        assert context.supplements["api_spec"] == "POST /login"

    def test_retry_bounded_by_policy(self, context: WorkflowContext, make_registry) -> None:
        agent = MockAgent(
            "coder",
            responses=[ContextInsufficientError("still missing", ("x",))] * 5,
        )
        registry = make_registry((_descriptor("coder", "implementation"), agent))
        step = StepDefinition(step_id="B", requirements=IMPL)
        scope, channel = _failed_scope(context, step, "coder")
        manager = _manager(registry, policy=RecoveryPolicy(max_retries=3))

        outcome = manager.handle_failure(
            step, ContextInsufficientError("missing", ("x",)), context, scope
        )

        assert not outcome.recovered
        assert outcome.strategy_used is None
        assert agent.call_count == 3
        assert scope.execution.steps["B"].status is StepStatus.FAILED
        assert "still missing" in scope.execution.steps["B"].error
        attempts = [e for e in _events(channel) if e.event_type is WorkflowEventType.RECOVERY_ATTEMPT]
        assert [e.attempt for e in attempts] == [1, 2, 3]

    def test_provider_failure_is_context_error(self, context: WorkflowContext, make_registry) -> None:
        coder = AgentDescriptor(
            name="coder", strengths=frozenset({"implementation"}), required_inputs=("secret",)
        )
        registry = make_registry(coder)
        step = StepDefinition(step_id="B", requirements=IMPL)
        scope, _ = _failed_scope(context, step, "coder")

        def provider(name, ctx):
            raise OSError("vault unreachable")

        manager = _manager(registry, context_provider=provider, policy=RecoveryPolicy(max_retries=1))
        outcome = manager.handle_failure(
            step, ContextInsufficientError("missing", ("secret",)), context, scope
        )

        assert not outcome.recovered
        assert "vault unreachable" in scope.execution.steps["B"].error

    def test_retry_runs_through_attempt_runner(self, context: WorkflowContext, make_registry) -> None:
        agent = MockAgent("coder", responses=["retried"])
        registry = make_registry((_descriptor("coder", "implementation"), agent))
        step = StepDefinition(step_id="B", requirements=IMPL, timeout=5.0)
        seen = []

        def runner(s: StepDefinition, call):
            seen.append(s.step_id)
            return call()

        scope, _ = _failed_scope(context, step, "coder", run_attempt=runner)

        outcome = _manager(registry).handle_failure(
            step, ContextInsufficientError("missing", ("x",)), context, scope
        )

        assert outcome.recovered
        assert seen == ["B"]
        assert scope.execution.steps["B"].attempt_duration >= 0.0

    def test_timed_out_retry_is_not_recovered(self, context: WorkflowContext, make_registry) -> None:
        agent = MockAgent("coder", responses=["never used"])
        registry = make_registry((_descriptor("coder", "implementation"), agent))
        step = StepDefinition(step_id="B", requirements=IMPL, timeout=0.1)

        def runner(s: StepDefinition, call):
            raise StepTimeoutError(s.step_id, s.timeout)

        scope, _ = _failed_scope(context, step, "coder", run_attempt=runner)

        outcome = _manager(registry).handle_failure(
            step, ContextInsufficientError("missing", ("x",)), context, scope
        )

        assert not outcome.recovered
        assert agent.call_count == 0
        assert "timed out" in scope.execution.steps["B"].error
        assert "B" not in context.artifacts


class TestAlternateAgent:
    def test_reassigns_to_next_best(self, context: WorkflowContext, make_registry) -> None:
        primary = MockAgent("senior", responses=[])
        backup = MockAgent("junior", responses=["done by junior"])
        registry = make_registry(
            (_descriptor("senior", "implementation"), primary),
            (AgentDescriptor(name="junior", capabilities=frozenset({"implementation"})), backup),
        )
        step = StepDefinition(step_id="B", requirements=IMPL)
        scope, _ = _failed_scope(context, step, "senior")

        outcome = _manager(registry).handle_failure(
            step, CapabilityMismatchError("cannot"), context, scope
        )

        assert outcome.recovered
        assert outcome.strategy_used is RecoveryStrategy.ALTERNATE_AGENT
        assert outcome.result.content == "done by junior"
        assert scope.execution.steps["B"].agent_name == "junior"
        assert StepStatus.ALTERNATE_AGENT in scope.execution.step_history("B")
        assert backup.calls[0].task.attempt == 2

    def test_no_alternate_fails(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("senior", "implementation"))
        step = StepDefinition(step_id="B", requirements=IMPL)
        scope, _ = _failed_scope(context, step, "senior")

        outcome = _manager(registry).handle_failure(
            step, CapabilityMismatchError("cannot"), context, scope
        )

        assert not outcome.recovered
        assert outcome.attempted == (RecoveryStrategy.ALTERNATE_AGENT,)
        assert scope.execution.steps["B"].status is StepStatus.FAILED
        assert scope.execution.metrics.recovery_attempts == 0


class TestDecomposition:
    SUBTASKS = (
        Subtask(TaskRequirements(category="design")),
        Subtask(TaskRequirements(category="implementation")),
    )

    def test_runs_subgraph(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        step = StepDefinition(step_id="B", requirements=IMPL)
        calls = []

        def run_subgraph(parent, subtasks, scope):
            calls.append((parent.step_id, subtasks, scope.depth))
            return context.commit_artifact("B", AgentResult(agent_name="coder", content=["a", "b"]))

        scope, _ = _failed_scope(context, step, "coder", run_subgraph)
        outcome = _manager(registry).handle_failure(
            step, TaskComplexityError("too big", subtasks=self.SUBTASKS), context, scope
        )

        assert outcome.recovered
        assert outcome.strategy_used is RecoveryStrategy.DECOMPOSITION
        assert calls == [("B", self.SUBTASKS, 1)]
        assert StepStatus.DECOMPOSING in scope.execution.step_history("B")

    def test_falls_back_to_declared_subtasks(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        step = StepDefinition(step_id="B", requirements=IMPL, subtasks=self.SUBTASKS)
        seen = []

        def run_subgraph(parent, subtasks, scope):
            seen.append(subtasks)
            return AgentResult(agent_name="coder")

        scope, _ = _failed_scope(context, step, "coder", run_subgraph)
        _manager(registry).handle_failure(step, TaskComplexityError("too big"), context, scope)

        assert seen == [self.SUBTASKS]

    def test_without_subtasks_fails(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        step = StepDefinition(step_id="B", requirements=IMPL)
        scope, _ = _failed_scope(context, step, "coder")

        outcome = _manager(registry).handle_failure(
            step, TaskComplexityError("too big"), context, scope
        )

        assert not outcome.recovered
        assert "No subtasks" in scope.execution.steps["B"].error

    def test_depth_limit(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        step = StepDefinition(step_id="B.1", requirements=IMPL)
        scope, _ = _failed_scope(context, step, "coder")
        scope.depth = 1

        outcome = _manager(registry, policy=RecoveryPolicy(max_decomposition_depth=1)).handle_failure(
            step, TaskComplexityError("too big", subtasks=self.SUBTASKS), context, scope
        )

        assert not outcome.recovered
        assert "depth" in scope.execution.steps["B.1"].error


class TestEscalation:
    def test_critical_error_escalates(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        step = StepDefinition(step_id="Y", requirements=IMPL)
        scope, channel = _failed_scope(context, step, "coder")
        received = []

        outcome = _manager(registry, escalation_handler=received.append).handle_failure(
            step, AgentError("disk full", Severity.CRITICAL), context, scope
        )

        assert not outcome.recovered
        assert outcome.strategy_used is RecoveryStrategy.ESCALATION
        assert outcome.escalation is received[0]
        assert outcome.escalation.error_type == "AgentError"
        assert outcome.escalation.context_snapshot["feature"]["feature_id"] == "F-001"
        assert scope.execution.steps["Y"].status is StepStatus.ESCALATED
        kinds = [e.event_type for e in _events(channel)]
        assert WorkflowEventType.ESCALATE in kinds

    def test_snapshot_is_detached(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        step = StepDefinition(step_id="Y", requirements=IMPL)
        scope, _ = _failed_scope(context, step, "coder")

        outcome = _manager(registry).handle_failure(
            step, AgentError("boom", Severity.CRITICAL), context, scope
        )
        context.domain_constraints["language"] = "rust"

        assert outcome.escalation.context_snapshot["domain_constraints"]["language"] == "python"

    def test_handler_error_is_contained(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        step = StepDefinition(step_id="Y", requirements=IMPL)
        scope, _ = _failed_scope(context, step, "coder")

        def handler(record):
            raise RuntimeError("pager down")

        outcome = _manager(registry, escalation_handler=handler).handle_failure(
            step, AgentError("boom", Severity.CRITICAL), context, scope
        )

        assert outcome.escalation is not None

    def test_escalates_after_failed_retry(self, context: WorkflowContext, make_registry) -> None:
        agent = MockAgent("coder", responses=[ContextInsufficientError("again", ("x",))])
        registry = make_registry((_descriptor("coder", "implementation"), agent))
        step = StepDefinition(step_id="Y", requirements=IMPL)
        scope, _ = _failed_scope(context, step, "coder")

        outcome = _manager(registry, policy=RecoveryPolicy(max_retries=1)).handle_failure(
            step,
            ContextInsufficientError("missing", ("x",), severity=Severity.CRITICAL),
            context,
            scope,
        )

        assert outcome.attempted == (RecoveryStrategy.ENHANCED_RETRY, RecoveryStrategy.ESCALATION)
        assert outcome.escalation is not None


class TestCompensation:
    def _completed_scope(self, context, steps):
        scope, channel = _failed_scope(
            context, StepDefinition(step_id="failed", requirements=IMPL), "coder"
        )
        for step_id, action in steps:
            scope.execution.add_step(step_id, "build")
            scope.execution.transition(step_id, StepStatus.RUNNING)
            scope.execution.transition(step_id, StepStatus.COMPLETED)
            scope.ledger.record(step_id, AgentResult(agent_name="coder"), action)
        _events(channel)
        return scope, channel

    def test_reverse_completion_order(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        undone = []

        def undo(step_id, result, ctx):
            undone.append(step_id)

        scope, channel = self._completed_scope(context, [("s1", undo), ("s2", undo), ("s3", undo)])
        outcome = _manager(registry).compensate(scope)

        assert undone == ["s3", "s2", "s1"]
        assert outcome.compensated == ("s3", "s2", "s1")
        assert outcome.clean
        for step_id in ("s1", "s2", "s3"):
            assert scope.execution.steps[step_id].status is StepStatus.COMPENSATED
        assert [e.step_id for e in _events(channel)] == ["s3", "s2", "s1"]

    def test_steps_without_action(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        scope, _ = self._completed_scope(context, [("s1", None), ("s2", lambda *a: None)])

        outcome = _manager(registry).compensate(scope)

        assert outcome.without_action == ("s1",)
        assert outcome.invoked == ("s2",)
        assert scope.execution.steps["s1"].status is StepStatus.COMPLETED

    def test_failing_action_does_not_stop_sweep(self, context: WorkflowContext, make_registry) -> None:
        registry = make_registry(_descriptor("coder", "implementation"))
        undone = []

        def broken(step_id, result, ctx):
            raise RuntimeError("rollback refused")

        scope, _ = self._completed_scope(
            context,
            [("s1", lambda s, r, c: undone.append(s)), ("s2", broken), ("s3", lambda s, r, c: undone.append(s))],
        )
        outcome = _manager(registry).compensate(scope)

        assert undone == ["s3", "s1"]
        assert outcome.invoked == ("s3", "s2", "s1")
        assert not outcome.clean
        assert outcome.errors[0].step_id == "s2"
        record = scope.execution.steps["s2"]
        assert record.status is StepStatus.COMPLETED
        assert "rollback refused" in record.compensation_error
