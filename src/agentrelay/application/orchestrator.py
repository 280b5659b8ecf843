"""
WorkflowOrchestrator: schedules and drives workflow executions.

Execution order:

1. Build the dependency graph and resolve every step's agent. Any
   definition error, cycle or unmatched task stops here, before a step runs.
2. Run the phases in order. Each phase is split into dispatch groups by its
   strategy: one step per group for sequential and domain-chain phases,
   independent-step groups for parallel phases. Every group ends at a
   synchronization barrier.
3. Offer each failed step to the RecoveryManager. An unrecovered failure
   or a failed quality gate stops the workflow and runs the compensation
   sweep.
4. Skip what never ran, settle the execution status and archive the
   context.

Agents run on a bounded worker pool. Results are committed only on the
orchestrator thread, after the step's future has settled.
"""

import logging
import time
from collections.abc import Callable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone

from agentrelay.application.capability_matcher import CapabilityMatcher
from agentrelay.application.context_manager import ContextPreservationManager
from agentrelay.application.monitor import WorkflowMonitor
from agentrelay.application.quality_gates import QualityGateOrchestrator
from agentrelay.application.recovery import (
    ContextProvider,
    EscalationHandler,
    RecoveryManager,
)
from agentrelay.application.scope import ExecutionScope
from agentrelay.application.workflow_event_emitter import WorkflowEventEmitter
from agentrelay.config import OrchestratorConfig
from agentrelay.domain.exceptions import (
    AgentError,
    StepTimeoutError,
    TaskComplexityError,
    WorkflowDefinitionError,
)
from agentrelay.domain.graph import DependencyGraph
from agentrelay.domain.interfaces import (
    ContextArchiveInterface,
    ValidatorInterface,
    WorkflowEventStoreInterface,
)
from agentrelay.domain.models import (
    AgentResult,
    AgentSelection,
    ExecutionPlan,
    ExecutionStatus,
    ExecutionStrategy,
    Phase,
    QualityGate,
    StepDefinition,
    StepStatus,
    Subtask,
    WorkflowContext,
    WorkflowDefinition,
    WorkflowExecution,
)
from agentrelay.domain.registry import CapabilityRegistry

logger = logging.getLogger("agentrelay.orchestrator")


@dataclass(frozen=True)
class _Failure:
    """Why a workflow stopped."""

    reason: str
    step_id: str | None = None  # None when a quality gate failed


@dataclass
class _InFlight:
    step: StepDefinition
    started: float
    deadline: float | None
    timeout: float | None


class WorkflowOrchestrator:
    """
    Executes workflow definitions against a capability registry.

    One orchestrator can run many workflows; all per-run state lives in an
    ExecutionScope created by execute().
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        validators: Mapping[str, ValidatorInterface] | None = None,
        config: OrchestratorConfig | None = None,
        monitor: WorkflowMonitor | None = None,
        event_store: WorkflowEventStoreInterface | None = None,
        archive: ContextArchiveInterface | None = None,
        context_provider: ContextProvider | None = None,
        escalation_handler: EscalationHandler | None = None,
    ):
        """
        Args:
            registry: Agent catalog; frozen here if it is not already
            validators: Validator library for quality gates
            config: Pool size, timeouts and policies
            monitor: Receives every event (a private one is created if None)
            event_store: Optional persistence for events
            archive: Optional store for final contexts
            context_provider: Supplies missing context fields on retry
            escalation_handler: External collaborator for escalations
        """
        self._config = config or OrchestratorConfig()
        self._registry = registry if registry.frozen else registry.freeze()
        self._matcher = CapabilityMatcher(self._registry, self._config.matching)
        self._context_manager = ContextPreservationManager(self._registry)
        self._gates = QualityGateOrchestrator(validators, self._config.max_workers)
        self._recovery = RecoveryManager(
            self._matcher,
            self._context_manager,
            self._config.recovery,
            context_provider=context_provider,
            escalation_handler=escalation_handler,
        )
        self._monitor = monitor or WorkflowMonitor(self._config.scoring)
        self._event_store = event_store
        self._archive = archive

    @property
    def monitor(self) -> WorkflowMonitor:
        return self._monitor

    @property
    def matcher(self) -> CapabilityMatcher:
        return self._matcher

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def plan(self, definition: WorkflowDefinition) -> ExecutionPlan:
        """
        Build the schedule without running anything.

        Raises:
            WorkflowDefinitionError: If the definition is invalid
            CyclicDependencyError: If the dependencies contain a cycle
            NoCapableAgentError: If a step cannot be matched to an agent
        """
        graph, assignments = self._build_schedule(definition)
        groups = tuple(
            group
            for phase in definition.phases
            for group in self._phase_groups(definition, phase, graph)
        )
        typical = {
            step_id: self._registry.get(selection.primary_agent).typical_duration
            for step_id, selection in assignments.items()
        }
        path, _ = graph.critical_path(typical)
        estimate = sum(max(typical[step_id] for step_id in group) for group in groups)
        return ExecutionPlan(
            workflow_id=definition.workflow_id,
            assignments=assignments,
            groups=groups,
            critical_path=path,
            estimated_duration=estimate,
        )

    def _build_schedule(
        self, definition: WorkflowDefinition
    ) -> tuple[DependencyGraph, dict[str, AgentSelection]]:
        if not definition.phases:
            raise WorkflowDefinitionError(f"Workflow '{definition.workflow_id}' has no phases")
        graph = DependencyGraph(definition.steps)
        self._check_phases(definition)
        assignments = {
            step.step_id: self._matcher.resolve(step.requirements, step.agent)
            for step in definition.steps
        }
        return graph, assignments

    def _check_phases(self, definition: WorkflowDefinition) -> None:
        """Dependencies may only point to the same or an earlier phase.

        Domain-chain stages run in declaration order, so a stage may only
        reference earlier stages of its chain.
        """
        phase_of: dict[str, int] = {}
        position: dict[str, int] = {}
        for index, phase in enumerate(definition.phases):
            if not phase.steps:
                raise WorkflowDefinitionError(f"Phase '{phase.name}' has no steps")
            for offset, step in enumerate(phase.steps):
                phase_of[step.step_id] = index
                position[step.step_id] = offset

        for index, phase in enumerate(definition.phases):
            chain = (
                definition.strategy_for(phase, self._config.default_strategy)
                is ExecutionStrategy.DOMAIN_CHAIN
            )
            for step in phase.steps:
                if step.inputs and not chain:
                    raise WorkflowDefinitionError(
                        f"Step '{step.step_id}' declares inputs outside a domain chain"
                    )
                for dep in step.predecessors:
                    if phase_of[dep] > index:
                        raise WorkflowDefinitionError(
                            f"Step '{step.step_id}' depends on '{dep}' from a later phase"
                        )
                    if (
                        chain
                        and phase_of[dep] == index
                        and position[dep] > position[step.step_id]
                    ):
                        raise WorkflowDefinitionError(
                            f"Stage '{step.step_id}' references later stage '{dep}'"
                        )

    def _phase_groups(
        self, definition: WorkflowDefinition, phase: Phase, graph: DependencyGraph
    ) -> tuple[tuple[str, ...], ...]:
        strategy = definition.strategy_for(phase, self._config.default_strategy)
        if strategy is ExecutionStrategy.DOMAIN_CHAIN:
            return tuple((step.step_id,) for step in phase.steps)
        ids = {step.step_id for step in phase.steps}
        if strategy is ExecutionStrategy.SEQUENTIAL:
            return tuple((sid,) for sid in graph.topological_order() if sid in ids)
        subgraph = DependencyGraph(
            phase.steps, external=[sid for sid in graph.step_ids if sid not in ids]
        )
        return subgraph.parallel_groups()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(
        self, definition: WorkflowDefinition, context: WorkflowContext
    ) -> WorkflowExecution:
        """
        Run a workflow to a terminal status.

        Args:
            definition: Phases and steps to run
            context: Initial workflow context, updated in place

        Returns:
            The WorkflowExecution, with the final context attached

        Raises:
            WorkflowDefinitionError: If the definition is invalid
            CyclicDependencyError: If the dependencies contain a cycle
            NoCapableAgentError: If a step cannot be matched to an agent
        """
        graph, assignments = self._build_schedule(definition)
        gates_after = self._gates_by_phase(definition, context)
        groups = {
            phase.name: self._phase_groups(definition, phase, graph)
            for phase in definition.phases
        }

        execution = WorkflowExecution(workflow_id=definition.workflow_id, context=context)
        for phase in definition.phases:
            for step in phase.steps:
                record = execution.add_step(step.step_id, phase.name)
                record.agent_name = assignments[step.step_id].primary_agent

        emitter = WorkflowEventEmitter(
            self._monitor.channel,
            definition.workflow_id,
            self._event_store,
            execution_id=execution.execution_id,
        )
        logger.info(
            "Starting workflow %s (run %s): %d steps in %d phases",
            definition.workflow_id,
            execution.execution_id,
            len(execution.steps),
            len(definition.phases),
        )
        emitter.workflow_start(
            summary=f"{len(execution.steps)} steps in {len(definition.phases)} phases"
        )

        started = time.perf_counter()
        pool = ThreadPoolExecutor(
            max_workers=self._config.max_workers, thread_name_prefix="agentrelay"
        )
        scope = ExecutionScope(
            execution=execution,
            emitter=emitter,
            run_subgraph=lambda step, subtasks, s: self._run_subgraph(step, subtasks, s, pool),
            run_attempt=lambda step, call: self._run_attempt(
                step, call, execution, emitter, pool
            ),
        )
        failure: _Failure | None = None
        try:
            for phase in definition.phases:
                logger.info("Phase %s", phase.name)
                for group in groups[phase.name]:
                    failure = self._run_group(
                        [definition.get_step(sid) for sid in group], scope, pool
                    )
                    if failure is not None:
                        break
                if failure is None:
                    failure = self._evaluate_gates(gates_after.get(phase.name, ()), scope)
                if failure is not None:
                    break
            else:
                failure = self._evaluate_gates(gates_after.get(None, ()), scope)
        finally:
            # Timed-out agents are abandoned, never waited for
            pool.shutdown(wait=False, cancel_futures=True)

        self._finalize(scope, failure, time.perf_counter() - started)
        return execution

    def _gates_by_phase(
        self, definition: WorkflowDefinition, context: WorkflowContext
    ) -> dict[str | None, tuple[QualityGate, ...]]:
        names = {phase.name for phase in definition.phases}
        gates: dict[str | None, list[QualityGate]] = {}
        for gate in context.quality_gates:
            if gate.after_phase is not None and gate.after_phase not in names:
                raise WorkflowDefinitionError(
                    f"Quality gate '{gate.name}' follows unknown phase '{gate.after_phase}'"
                )
            gates.setdefault(gate.after_phase, []).append(gate)
        return {phase: tuple(items) for phase, items in gates.items()}

    def _run_group(
        self,
        steps: list[StepDefinition],
        scope: ExecutionScope,
        pool: ThreadPoolExecutor,
    ) -> _Failure | None:
        """Run one group to its barrier, recovering failed members.

        Members not yet dispatched when a failure occurs stay pending; they
        are dispatched once every failure is recovered and skipped otherwise.
        """
        pending = list(steps)
        while pending:
            failures = self._dispatch(pending, scope, pool)
            for step, error in failures:
                failure = self._recover(step, error, scope)
                if failure is not None:
                    return failure
        return None

    def _dispatch(
        self,
        pending: list[StepDefinition],
        scope: ExecutionScope,
        pool: ThreadPoolExecutor,
    ) -> list[tuple[StepDefinition, AgentError]]:
        """Submit pending steps until one fails, then wait for the barrier."""
        running: dict[Future[AgentResult], _InFlight] = {}
        failures: list[tuple[StepDefinition, AgentError]] = []

        while pending or running:
            while pending and not failures and len(running) < self._config.max_workers:
                step = pending.pop(0)
                future, inflight = self._submit(step, scope, pool)
                running[future] = inflight
            if not running:
                break

            deadlines = [f.deadline for f in running.values() if f.deadline is not None]
            timeout = max(0.0, min(deadlines) - time.perf_counter()) if deadlines else None
            done, _ = wait(list(running), timeout=timeout, return_when=FIRST_COMPLETED)

            # Settle in submission order so concurrent completions commit deterministically
            for future in [f for f in running if f in done]:
                inflight = running.pop(future)
                elapsed = time.perf_counter() - inflight.started
                try:
                    result = future.result()
                except AgentError as e:
                    self._fail(inflight.step, e, elapsed, scope)
                    failures.append((inflight.step, e))
                else:
                    self._complete(inflight.step, result, elapsed, scope)

            now = time.perf_counter()
            for future, inflight in list(running.items()):
                if inflight.deadline is None or now < inflight.deadline:
                    continue
                future.cancel()
                del running[future]
                error = StepTimeoutError(inflight.step.step_id, inflight.timeout or 0.0)
                self._fail(inflight.step, error, now - inflight.started, scope)
                failures.append((inflight.step, error))

        return failures

    def _submit(
        self,
        step: StepDefinition,
        scope: ExecutionScope,
        pool: ThreadPoolExecutor,
    ) -> tuple["Future[AgentResult]", _InFlight]:
        execution = scope.execution
        record = execution.steps[step.step_id]
        record.attempts += 1
        execution.transition(step.step_id, StepStatus.RUNNING)
        agent_name = record.agent_name or ""
        logger.info("Step %s -> %s (attempt %d)", step.step_id, agent_name, record.attempts)
        scope.emitter.step_start(step.step_id, agent_name, record.attempts, step.predecessors)

        timeout = step.timeout or self._config.step_timeout
        started = time.perf_counter()
        future = pool.submit(
            self._invoke, step, agent_name, record.attempts, scope.context
        )
        return future, _InFlight(
            step=step,
            started=started,
            deadline=started + timeout if timeout else None,
            timeout=timeout,
        )

    def _invoke(
        self,
        step: StepDefinition,
        agent_name: str,
        attempt: int,
        context: WorkflowContext,
    ) -> AgentResult:
        """Worker-side half of a handoff: reads the context, never writes it."""
        task = self._context_manager.task_for(step, agent_name, context, attempt=attempt)
        source = self._context_manager.source_step(task, context)
        return self._context_manager.invoke(source, task, context, step.instructions)

    def _run_attempt(
        self,
        step: StepDefinition,
        call: Callable[[], AgentResult],
        execution: WorkflowExecution,
        emitter: WorkflowEventEmitter,
        pool: ThreadPoolExecutor,
    ) -> AgentResult:
        """Run a recovery attempt on the pool under the step's timeout.

        Raises:
            StepTimeoutError: If the attempt outlives the deadline
            AgentError: If the agent fails
        """
        timeout = step.timeout or self._config.step_timeout
        started = time.perf_counter()
        future = pool.submit(call)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            if future.done():
                # The agent itself raised a timeout, or finished at the deadline
                return future.result()
            future.cancel()
            error = StepTimeoutError(step.step_id, timeout or 0.0)
            record = execution.steps[step.step_id]
            execution.metrics.error_count += 1
            emitter.step_fail(
                step.step_id, record.agent_name, time.perf_counter() - started, error
            )
            logger.warning("Step %s timed out during recovery after %.3fs", step.step_id, timeout)
            raise error from None

    def _complete(
        self,
        step: StepDefinition,
        result: AgentResult,
        elapsed: float,
        scope: ExecutionScope,
    ) -> None:
        committed = self._context_manager.commit(step.step_id, result, scope.context)
        record = scope.execution.steps[step.step_id]
        record.duration += elapsed
        record.attempt_duration = elapsed
        self._settle(step, committed, scope)

    def _settle(self, step: StepDefinition, result: AgentResult, scope: ExecutionScope) -> None:
        """Mark a committed step completed and add it to the saga ledger."""
        execution = scope.execution
        record = execution.steps[step.step_id]
        execution.transition(step.step_id, StepStatus.COMPLETED)
        execution.metrics.step_durations[step.step_id] = record.duration
        scope.ledger.record(step.step_id, result, step.compensate)
        scope.emitter.step_complete(
            step.step_id, record.agent_name or "", record.attempt_duration, record.attempts
        )
        logger.info("Step %s completed in %.3fs", step.step_id, record.duration)

    def _fail(
        self,
        step: StepDefinition,
        error: AgentError,
        elapsed: float,
        scope: ExecutionScope,
    ) -> None:
        execution = scope.execution
        record = execution.steps[step.step_id]
        record.duration += elapsed
        record.attempt_duration = elapsed
        record.error = str(error)
        execution.transition(step.step_id, StepStatus.FAILED)
        execution.metrics.error_count += 1
        scope.emitter.step_fail(step.step_id, record.agent_name, elapsed, error)
        logger.warning("Step %s failed: %s: %s", step.step_id, error.error_type, error)

    def _recover(
        self, step: StepDefinition, error: AgentError, scope: ExecutionScope
    ) -> _Failure | None:
        execution = scope.execution
        outcome = self._recovery.handle_failure(step, error, scope.context, scope)
        if outcome.recovered and outcome.result is not None:
            self._settle(step, outcome.result, scope)
            return None

        if outcome.escalation is not None:
            execution.escalation = outcome.escalation
        if execution.steps[step.step_id].status is not StepStatus.FAILED:
            execution.transition(step.step_id, StepStatus.FAILED)
        return _Failure(reason=f"{error.error_type}: {error}", step_id=step.step_id)

    def _run_subgraph(
        self,
        parent: StepDefinition,
        subtasks: tuple[Subtask, ...],
        scope: ExecutionScope,
        pool: ThreadPoolExecutor,
    ) -> AgentResult:
        """Run a decomposed step as a sequential chain of sub-steps.

        The parent's artifact is the aggregate of the sub-step results.

        Raises:
            TaskComplexityError: If a sub-step cannot be completed
        """
        execution = scope.execution
        parent_record = execution.steps[parent.step_id]
        sub_steps: list[StepDefinition] = []
        previous: str | None = None
        for index, subtask in enumerate(subtasks, start=1):
            step_id = f"{parent.step_id}.{index}"
            sub_steps.append(
                StepDefinition(
                    step_id=step_id,
                    requirements=subtask.requirements,
                    depends_on=(previous,) if previous else parent.predecessors,
                    instructions=subtask.instructions or parent.instructions,
                    timeout=parent.timeout,
                    parent_step=parent.step_id,
                )
            )
            previous = step_id
        DependencyGraph(sub_steps, external=execution.steps)

        for sub_step in sub_steps:
            selection = self._matcher.select_agent(sub_step.requirements)
            record = execution.add_step(
                sub_step.step_id, parent_record.phase, parent_step=parent.step_id
            )
            record.agent_name = selection.primary_agent

        for sub_step in sub_steps:
            failure = self._run_group([sub_step], scope, pool)
            if failure is not None:
                for remaining in sub_steps:
                    if execution.steps[remaining.step_id].status is StepStatus.PENDING:
                        execution.transition(remaining.step_id, StepStatus.SKIPPED)
                        scope.emitter.step_skipped(remaining.step_id)
                raise TaskComplexityError(
                    f"Sub-step {failure.step_id} of {parent.step_id} failed: {failure.reason}"
                )

        results = [scope.context.artifacts[sub.step_id] for sub in sub_steps]
        outputs: dict[str, object] = {}
        decisions: list[str] = []
        limitations: list[str] = []
        for result in results:
            outputs.update(result.outputs)
            decisions.extend(result.decisions)
            limitations.extend(result.limitations)
        aggregate = AgentResult(
            agent_name=parent_record.agent_name or "",
            content=[result.content for result in results],
            outputs=outputs,
            decisions=tuple(decisions),
            limitations=tuple(limitations),
        )
        return self._context_manager.commit(parent.step_id, aggregate, scope.context)

    def _evaluate_gates(
        self, gates: tuple[QualityGate, ...], scope: ExecutionScope
    ) -> _Failure | None:
        for gate in gates:
            result = self._gates.evaluate(gate, scope.context, emitter=scope.emitter)
            scope.execution.metrics.gate_results.append(result)
            if not result.passed:
                failed = ", ".join(result.failed_checks) or "no validators"
                return _Failure(reason=f"Quality gate '{gate.name}' failed ({failed})")
        return None

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def _skip_pending(self, scope: ExecutionScope) -> None:
        for step_id, record in scope.execution.steps.items():
            if record.status is StepStatus.PENDING:
                scope.execution.transition(step_id, StepStatus.SKIPPED)
                scope.emitter.step_skipped(step_id)
                logger.info("Step %s skipped", step_id)

    def _finalize(
        self,
        scope: ExecutionScope,
        failure: _Failure | None,
        duration: float,
    ) -> None:
        execution = scope.execution
        context = scope.context

        if failure is not None:
            execution.failed_step = failure.step_id
            execution.failure_reason = failure.reason
            execution.compensation = self._recovery.compensate(scope)
        self._skip_pending(scope)

        if failure is None:
            execution.status = (
                ExecutionStatus.SUCCEEDED_AFTER_RECOVERY
                if execution.recovered
                else ExecutionStatus.SUCCEEDED
            )
            context.archive()
        else:
            execution.status = (
                ExecutionStatus.ESCALATED
                if execution.escalation is not None
                else ExecutionStatus.FAILED_COMPENSATED
            )
            context.mark_failed(f"{execution.status.value}: {failure.reason}")

        execution.ended_at = datetime.now(timezone.utc).isoformat()
        scope.emitter.workflow_end(execution.status.value, duration, execution.failed_step)
        self._monitor.drain()
        logger.log(
            logging.INFO if failure is None else logging.WARNING,
            "Workflow %s finished: %s in %.3fs",
            execution.workflow_id,
            execution.status.value,
            duration,
        )

        if self._archive is not None:
            self._archive.store(execution)
