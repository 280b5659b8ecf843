"""
RecoveryManager: selects and applies recovery strategies for step failures.

Strategies are evaluated in a fixed order and the first one that applies
and completes is used:

1. Enhanced retry for missing context
2. Alternate agent for a capability mismatch
3. Decomposition for an over-complex task
4. Escalation for critical failures

When recovery is impossible the manager also runs the saga sweep:
compensating actions of completed steps in reverse completion order.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from agentrelay.application.capability_matcher import CapabilityMatcher
from agentrelay.application.context_manager import ContextPreservationManager
from agentrelay.application.scope import ExecutionScope
from agentrelay.config import RecoveryPolicy
from agentrelay.domain.exceptions import (
    AgentError,
    CapabilityMismatchError,
    CompensationError,
    ContextInsufficientError,
    NoCapableAgentError,
    TaskComplexityError,
)
from agentrelay.domain.models import (
    AgentResult,
    CompensationOutcome,
    EscalationRecord,
    RecoveryResult,
    RecoveryStrategy,
    StepDefinition,
    StepStatus,
    WorkflowContext,
)

logger = logging.getLogger("agentrelay.recovery")

# (field name, context) -> value, or None when the provider has nothing
ContextProvider = Callable[[str, WorkflowContext], Any]
EscalationHandler = Callable[[EscalationRecord], None]


class RecoveryManager:
    """Recovers failed steps and compensates completed ones."""

    def __init__(
        self,
        matcher: CapabilityMatcher,
        context_manager: ContextPreservationManager,
        policy: RecoveryPolicy | None = None,
        context_provider: ContextProvider | None = None,
        escalation_handler: EscalationHandler | None = None,
    ):
        """
        Args:
            matcher: Used to pick an alternate agent
            context_manager: Used to re-invoke and commit recovered steps
            policy: Retry and decomposition bounds
            context_provider: Source of missing context fields for retries
            escalation_handler: External collaborator receiving escalations
        """
        self._matcher = matcher
        self._context_manager = context_manager
        self._policy = policy or RecoveryPolicy()
        self._context_provider = context_provider
        self._escalation_handler = escalation_handler

    @staticmethod
    def applicable_strategies(error: Exception) -> tuple[RecoveryStrategy, ...]:
        """Strategies that apply to an error, in evaluation order."""
        strategies = []
        if isinstance(error, ContextInsufficientError):
            strategies.append(RecoveryStrategy.ENHANCED_RETRY)
        if isinstance(error, CapabilityMismatchError):
            strategies.append(RecoveryStrategy.ALTERNATE_AGENT)
        if isinstance(error, TaskComplexityError):
            strategies.append(RecoveryStrategy.DECOMPOSITION)
        if isinstance(error, AgentError) and error.critical:
            strategies.append(RecoveryStrategy.ESCALATION)
        return tuple(strategies)

    def handle_failure(
        self,
        failed_step: StepDefinition,
        error: AgentError,
        context: WorkflowContext,
        scope: ExecutionScope,
    ) -> RecoveryResult:
        """
        Try each applicable strategy in order.

        A strategy that raises moves on to the next one. Escalation always
        completes and reports recovered=False.

        Args:
            failed_step: Definition of the step that failed
            error: The step-level error it raised
            context: Workflow context (enriched in place by retries)
            scope: Execution being recovered

        Returns:
            RecoveryResult; ``result`` holds the committed artifact when
            the step was recovered
        """
        step_id = failed_step.step_id
        record = scope.execution.steps[step_id]
        attempted: list[RecoveryStrategy] = []
        handlers = {
            RecoveryStrategy.ENHANCED_RETRY: self._enhanced_retry,
            RecoveryStrategy.ALTERNATE_AGENT: self._alternate_agent,
            RecoveryStrategy.DECOMPOSITION: self._decompose,
        }

        for strategy in self.applicable_strategies(error):
            attempted.append(strategy)
            if strategy is RecoveryStrategy.ESCALATION:
                escalation = self._escalate(failed_step, error, context, scope)
                scope.emitter.recovery_result(step_id, strategy.value, False)
                return RecoveryResult(
                    recovered=False,
                    strategy_used=strategy,
                    updated_context=context,
                    escalation=escalation,
                    attempted=tuple(attempted),
                )

            logger.warning("Recovering %s with %s", step_id, strategy.value)
            start = time.perf_counter()
            try:
                result = handlers[strategy](failed_step, error, context, scope)
            except (AgentError, NoCapableAgentError) as e:
                record.duration += time.perf_counter() - start
                logger.warning("%s did not recover %s: %s", strategy.value, step_id, e)
                record.error = str(e)
                if record.status is not StepStatus.FAILED:
                    scope.execution.transition(step_id, StepStatus.FAILED)
                continue
            record.duration += time.perf_counter() - start
            record.error = None
            record.recovery_strategy = strategy
            scope.emitter.recovery_result(step_id, strategy.value, True)
            return RecoveryResult(
                recovered=True,
                strategy_used=strategy,
                updated_context=context,
                result=result,
                attempted=tuple(attempted),
            )

        logger.warning("No recovery strategy succeeded for %s", step_id)
        scope.emitter.recovery_result(step_id, None, False)
        return RecoveryResult(
            recovered=False,
            strategy_used=None,
            updated_context=context,
            attempted=tuple(attempted),
        )

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def _begin_attempt(
        self,
        scope: ExecutionScope,
        step_id: str,
        status: StepStatus,
        strategy: RecoveryStrategy,
        attempt: int,
    ) -> None:
        scope.execution.transition(step_id, status)
        scope.execution.metrics.recovery_attempts += 1
        scope.emitter.recovery_attempt(step_id, strategy.value, attempt)

    def _attempt(
        self,
        step: StepDefinition,
        agent_name: str,
        context: WorkflowContext,
        scope: ExecutionScope,
    ) -> AgentResult:
        """Invoke the agent through the scope's runner, then commit."""
        record = scope.execution.steps[step.step_id]
        task = self._context_manager.task_for(step, agent_name, context, attempt=record.attempts)
        source = self._context_manager.source_step(task, context)
        started = time.perf_counter()
        try:
            result = scope.run_attempt(
                step,
                lambda: self._context_manager.invoke(source, task, context, step.instructions),
            )
        finally:
            record.attempt_duration = time.perf_counter() - started
        return self._context_manager.commit(step.step_id, result, context)

    def _enhanced_retry(
        self,
        step: StepDefinition,
        error: AgentError,
        context: WorkflowContext,
        scope: ExecutionScope,
    ) -> AgentResult:
        record = scope.execution.steps[step.step_id]
        assert isinstance(error, ContextInsufficientError)
        last_error: AgentError = error
        missing = error.missing_fields

        for attempt in range(1, self._policy.max_retries + 1):
            self._begin_attempt(
                scope, step.step_id, StepStatus.RETRYING, RecoveryStrategy.ENHANCED_RETRY, attempt
            )
            record.attempts += 1
            try:
                self._enrich(missing, context)
                return self._attempt(step, record.agent_name or "", context, scope)
            except ContextInsufficientError as e:
                logger.debug("Retry %d of %s still short of context: %s", attempt, step.step_id, e)
                last_error = e
                missing = e.missing_fields
        raise last_error

    def _enrich(self, fields: tuple[str, ...], context: WorkflowContext) -> None:
        """Fill missing fields from prior artifacts' outputs, then the provider."""
        for name in fields:
            if context.has_field(name):
                continue
            value = self._from_artifacts(name, context)
            if value is None and self._context_provider is not None:
                try:
                    value = self._context_provider(name, context)
                except Exception as e:
                    raise ContextInsufficientError(
                        f"Context provider failed for '{name}': {e}",
                        missing_fields=(name,),
                    ) from e
            if value is not None:
                context.supplements[name] = value
                logger.debug("Enriched context with %s", name)

    @staticmethod
    def _from_artifacts(name: str, context: WorkflowContext) -> Any:
        for result in reversed(list(context.artifacts.values())):
            if name in result.outputs:
                return result.outputs[name]
        return None

    def _alternate_agent(
        self,
        step: StepDefinition,
        error: AgentError,
        context: WorkflowContext,
        scope: ExecutionScope,
    ) -> AgentResult:
        record = scope.execution.steps[step.step_id]
        failed_agent = record.agent_name
        selection = self._matcher.select_agent(
            step.requirements, exclude=(failed_agent,) if failed_agent else ()
        )
        self._begin_attempt(
            scope, step.step_id, StepStatus.ALTERNATE_AGENT, RecoveryStrategy.ALTERNATE_AGENT, 1
        )
        logger.info(
            "Reassigning %s from %s to %s (confidence %.2f)",
            step.step_id,
            failed_agent,
            selection.primary_agent,
            selection.confidence,
        )
        record.agent_name = selection.primary_agent
        record.attempts += 1
        return self._attempt(step, selection.primary_agent, context, scope)

    def _decompose(
        self,
        step: StepDefinition,
        error: AgentError,
        context: WorkflowContext,
        scope: ExecutionScope,
    ) -> AgentResult:
        assert isinstance(error, TaskComplexityError)
        subtasks = error.subtasks or step.subtasks
        if not subtasks:
            raise TaskComplexityError(f"No subtasks available to decompose {step.step_id}")
        if scope.depth >= self._policy.max_decomposition_depth:
            raise TaskComplexityError(
                f"Decomposition depth {self._policy.max_decomposition_depth} "
                f"reached for {step.step_id}"
            )
        self._begin_attempt(
            scope, step.step_id, StepStatus.DECOMPOSING, RecoveryStrategy.DECOMPOSITION, 1
        )
        logger.info("Decomposing %s into %d subtasks", step.step_id, len(subtasks))
        record = scope.execution.steps[step.step_id]
        started = time.perf_counter()
        try:
            return scope.run_subgraph(step, subtasks, replace(scope, depth=scope.depth + 1))
        finally:
            record.attempt_duration = time.perf_counter() - started

    def _escalate(
        self,
        step: StepDefinition,
        error: AgentError,
        context: WorkflowContext,
        scope: ExecutionScope,
    ) -> EscalationRecord:
        self._begin_attempt(
            scope, step.step_id, StepStatus.ESCALATED, RecoveryStrategy.ESCALATION, 1
        )
        escalation = EscalationRecord(
            step_id=step.step_id,
            error_type=error.error_type,
            message=str(error),
            context_snapshot=context.snapshot(),
        )
        logger.error("Escalating %s: %s", step.step_id, error)
        scope.emitter.escalate(step.step_id, f"{escalation.error_type}: {escalation.message}")
        if self._escalation_handler is not None:
            try:
                self._escalation_handler(escalation)
            except Exception:
                logger.exception("Escalation handler failed for %s", step.step_id)
        return escalation

    # -------------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------------

    def compensate(self, scope: ExecutionScope) -> CompensationOutcome:
        """
        Invoke compensating actions in reverse completion order.

        Steps without an action are reported, not compensated. A failing
        action is logged and recorded; the sweep continues with the next
        step and the failed step is left COMPLETED.
        """
        invoked: list[str] = []
        compensated: list[str] = []
        without_action: list[str] = []
        errors: list[CompensationError] = []

        for entry in scope.ledger.reversed():
            if entry.compensate is None:
                logger.info("No compensating action for %s", entry.step_id)
                without_action.append(entry.step_id)
                continue

            invoked.append(entry.step_id)
            scope.execution.transition(entry.step_id, StepStatus.COMPENSATING)
            try:
                entry.compensate(entry.step_id, entry.result, scope.context)
            except Exception as e:
                logger.exception("Compensating action for %s failed", entry.step_id)
                errors.append(CompensationError(entry.step_id, e))
                scope.execution.steps[entry.step_id].compensation_error = str(e)
                scope.execution.transition(entry.step_id, StepStatus.COMPLETED)
                scope.emitter.compensate(entry.step_id, False, f"{type(e).__name__}: {e}")
                continue
            compensated.append(entry.step_id)
            scope.execution.transition(entry.step_id, StepStatus.COMPENSATED)
            scope.emitter.compensate(entry.step_id, True)

        outcome = CompensationOutcome(
            invoked=tuple(invoked),
            compensated=tuple(compensated),
            without_action=tuple(without_action),
            errors=tuple(errors),
        )
        logger.warning(
            "Compensation sweep: %d compensated, %d without action, %d failed",
            len(compensated),
            len(without_action),
            len(errors),
        )
        return outcome
