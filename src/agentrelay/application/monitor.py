"""
WorkflowMonitor: drains the event channel and builds workflow reports.

Components never call the monitor directly. They post WorkflowEvents on a
message channel and the monitor aggregates whatever it drains, so a report
can be produced at any time, including mid-execution, without touching the
execution itself.
"""

import logging
import queue
import threading
import time
from bisect import insort
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone

from agentrelay.config import QualityScorePolicy
from agentrelay.domain.graph import critical_path
from agentrelay.domain.models import ExecutionStatus, WorkflowExecution
from agentrelay.domain.report import (
    OUTCOME_LABELS,
    GateReport,
    PerformanceSection,
    QualitySection,
    RecoverySection,
    ReportSummary,
    WorkflowReport,
)
from agentrelay.domain.workflow_event import WorkflowEvent, WorkflowEventType

logger = logging.getLogger("agentrelay.monitor")

_SUCCESS_STATUSES = {
    ExecutionStatus.SUCCEEDED.value,
    ExecutionStatus.SUCCEEDED_AFTER_RECOVERY.value,
}


class WorkflowMonitor:
    """Aggregates workflow events per run.

    Traces are keyed by execution id. Wherever a run id is expected, a
    workflow id is also accepted and resolves to that workflow's latest run.
    """

    def __init__(self, scoring: QualityScorePolicy | None = None) -> None:
        self._channel: queue.Queue[WorkflowEvent] = queue.Queue()
        self._lock = threading.RLock()
        self._traces: dict[str, list[tuple[int, WorkflowEvent]]] = {}
        self._seen: dict[str, set[str]] = {}
        self._runs: dict[str, list[str]] = {}  # workflow id -> execution ids
        self._finished: set[str] = set()
        self._scoring = scoring or QualityScorePolicy()

    @property
    def channel(self) -> "queue.Queue[WorkflowEvent]":
        """Channel emitters post to."""
        return self._channel

    def drain(self) -> int:
        """Move every queued event into the per-run traces.

        Returns:
            Number of events drained
        """
        count = 0
        while True:
            try:
                event = self._channel.get_nowait()
            except queue.Empty:
                return count
            self.ingest(event)
            count += 1

    def ingest(self, event: WorkflowEvent) -> None:
        """Add one event, keeping each trace in emission order."""
        with self._lock:
            run = event.execution_id
            seen = self._seen.setdefault(run, set())
            if event.event_id in seen:
                return
            seen.add(event.event_id)
            if run not in self._traces:
                self._traces[run] = []
                self._runs.setdefault(event.workflow_id, []).append(run)
            insort(self._traces[run], (event.sequence, event), key=lambda item: item[0])
            if event.event_type is WorkflowEventType.WORKFLOW_END:
                self._finished.add(run)

    def ingest_all(self, events: Iterable[WorkflowEvent]) -> None:
        for event in events:
            self.ingest(event)

    @property
    def workflow_ids(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(workflow_id for workflow_id, runs in self._runs.items() if runs)

    def execution_ids(self, workflow_id: str) -> tuple[str, ...]:
        """Runs of a workflow held by the monitor, oldest first."""
        self.drain()
        with self._lock:
            return tuple(self._runs.get(workflow_id, ()))

    def _resolve(self, run: str) -> str | None:
        with self._lock:
            if run in self._traces:
                return run
            runs = self._runs.get(run)
            return runs[-1] if runs else None

    def events(self, run: str) -> tuple[WorkflowEvent, ...]:
        """Events received so far for a run, in emission order."""
        self.drain()
        with self._lock:
            execution_id = self._resolve(run)
            if execution_id is None:
                return ()
            return tuple(event for _, event in self._traces[execution_id])

    def evict(self, run: str) -> bool:
        """Drop a run's trace. Returns False if the monitor did not hold it."""
        self.drain()
        with self._lock:
            execution_id = self._resolve(run)
            if execution_id is None:
                return False
            workflow_id = self._traces[execution_id][0][1].workflow_id
            del self._traces[execution_id]
            del self._seen[execution_id]
            self._finished.discard(execution_id)
            self._runs[workflow_id].remove(execution_id)
            if not self._runs[workflow_id]:
                del self._runs[workflow_id]
            return True

    def evict_finished(self, keep_latest: int = 0) -> int:
        """
        Drop the traces of finished runs.

        Args:
            keep_latest: Finished runs to keep per workflow, newest first

        Returns:
            Number of traces dropped
        """
        self.drain()
        with self._lock:
            doomed = []
            for runs in self._runs.values():
                finished = [run for run in runs if run in self._finished]
                doomed.extend(finished[: max(0, len(finished) - keep_latest)])
            for execution_id in doomed:
                self.evict(execution_id)
        if doomed:
            logger.debug("Evicted %d finished traces", len(doomed))
        return len(doomed)

    def observe(
        self,
        workflow: str | WorkflowExecution,
        follow: bool = False,
        poll_interval: float = 0.05,
    ) -> Iterator[WorkflowEvent]:
        """
        Stream a run's events in emission order.

        Args:
            workflow: Execution id, workflow id (latest run) or the
                execution being observed
            follow: Keep streaming until WORKFLOW_END arrives
            poll_interval: Seconds between channel polls when following
        """
        run = workflow if isinstance(workflow, str) else workflow.execution_id
        seen = 0
        while True:
            events = self.events(run)
            yield from events[seen:]
            seen = len(events)
            ended = any(e.event_type is WorkflowEventType.WORKFLOW_END for e in events)
            if not follow or ended:
                return
            time.sleep(poll_interval)

    # -------------------------------------------------------------------------
    # Report
    # -------------------------------------------------------------------------

    def report(self, run: str) -> WorkflowReport:
        """
        Build a report from the events received so far.

        Reading never changes any execution state. On a finished run
        repeated calls return equal reports; mid-execution the report is
        partial.

        Args:
            run: Execution id, or a workflow id for its latest run

        Raises:
            KeyError: If no event was ever received for the run
        """
        events = self.events(run)
        if not events:
            raise KeyError(f"No events recorded for workflow '{run}'")

        status = ExecutionStatus.RUNNING.value
        total_duration: float | None = None
        unrecovered_step: str | None = None
        steps: list[str] = []
        agents: list[str] = []
        predecessors: dict[str, tuple[str, ...]] = {}
        step_durations: dict[str, float] = {}
        agent_durations: dict[str, float] = {}
        gates: list[GateReport] = []
        failed_checks = 0
        indeterminate_checks = 0
        error_count = 0
        recovery_attempts = 0
        strategies: list[tuple[str, str]] = []
        escalated = False
        compensated: list[str] = []
        compensation_failures: list[str] = []

        for event in events:
            kind = event.event_type
            if event.step_id and kind in (
                WorkflowEventType.STEP_START,
                WorkflowEventType.STEP_SKIPPED,
            ):
                if event.step_id not in steps:
                    steps.append(event.step_id)
            if kind is WorkflowEventType.STEP_START:
                predecessors[event.step_id or ""] = event.depends_on
                if event.agent_name and event.agent_name not in agents:
                    agents.append(event.agent_name)
            elif kind is WorkflowEventType.STEP_COMPLETE:
                step_durations[event.step_id or ""] = event.duration or 0.0
                self._add_agent_time(agent_durations, event)
            elif kind is WorkflowEventType.STEP_FAIL:
                error_count += 1
                self._add_agent_time(agent_durations, event)
            elif kind is WorkflowEventType.GATE_EVALUATED:
                gates.append(
                    GateReport(
                        gate_name=event.gate_name or "",
                        passed=bool(event.passed),
                        failed_validators=event.failed_validators,
                        recommendations=event.details,
                    )
                )
                indeterminate_checks += len(event.indeterminate)
                failed_checks += len(event.failed_validators) - len(event.indeterminate)
            elif kind is WorkflowEventType.RECOVERY_ATTEMPT:
                recovery_attempts += 1
            elif kind is WorkflowEventType.RECOVERY_RESULT:
                if event.passed and event.strategy:
                    strategies.append((event.step_id or "", event.strategy))
            elif kind is WorkflowEventType.ESCALATE:
                escalated = True
            elif kind is WorkflowEventType.COMPENSATE:
                compensated.append(event.step_id or "")
                if not event.passed:
                    compensation_failures.append(event.step_id or "")
            elif kind is WorkflowEventType.WORKFLOW_END:
                status = event.status or status
                total_duration = event.duration
                unrecovered_step = event.step_id

        if total_duration is None:
            total_duration = _elapsed_since(events[0].created_at)

        completed = tuple(step_durations)
        path, path_duration = critical_path(completed, predecessors, step_durations)
        busy = sum(step_durations.values())
        efficiency = busy / total_duration if total_duration > 0 else 0.0
        bottlenecks = self._bottlenecks(agent_durations)

        score = self._scoring.base_score
        score -= self._scoring.failed_check_penalty * failed_checks
        score -= self._scoring.indeterminate_penalty * indeterminate_checks
        score -= self._scoring.error_penalty * error_count
        score -= self._scoring.recovery_penalty * recovery_attempts
        overall_score = round(max(0.0, score) * 100.0 / self._scoring.base_score, 2)

        recovery = RecoverySection(
            error_count=error_count,
            recovery_attempts=recovery_attempts,
            strategies=tuple(strategies),
            unrecovered_step=unrecovered_step,
            escalated=escalated,
            compensated=tuple(compensated),
            compensation_failures=tuple(compensation_failures),
        )
        report = WorkflowReport(
            summary=ReportSummary(
                workflow_id=events[0].workflow_id,
                execution_id=events[0].execution_id,
                status=status,
                outcome=OUTCOME_LABELS.get(status, status),
                success=status in _SUCCESS_STATUSES,
                total_duration=round(total_duration, 6),
                agent_count=len(agents),
                step_count=len(steps),
            ),
            performance=PerformanceSection(
                agent_durations=tuple(sorted(agent_durations.items())),
                step_durations=tuple(step_durations.items()),
                bottlenecks=bottlenecks,
                parallelization_efficiency=round(efficiency, 4),
                critical_path=path,
                critical_path_duration=round(path_duration, 6),
            ),
            quality=QualitySection(gates=tuple(gates), overall_score=overall_score),
            recovery=recovery,
            recommendations=self._recommendations(bottlenecks, gates, recovery),
        )
        logger.debug("Report for %s built from %d events", events[0].execution_id, len(events))
        return report

    @staticmethod
    def _add_agent_time(agent_durations: dict[str, float], event: WorkflowEvent) -> None:
        if event.agent_name:
            agent_durations[event.agent_name] = (
                agent_durations.get(event.agent_name, 0.0) + (event.duration or 0.0)
            )

    def _bottlenecks(self, agent_durations: dict[str, float]) -> tuple[str, ...]:
        """Agents whose total time exceeds the mean by the configured ratio."""
        if len(agent_durations) < 2:
            return ()
        mean = sum(agent_durations.values()) / len(agent_durations)
        threshold = mean * self._scoring.bottleneck_ratio
        return tuple(
            name for name, total in sorted(agent_durations.items()) if total > threshold
        )

    @staticmethod
    def _recommendations(
        bottlenecks: tuple[str, ...],
        gates: list[GateReport],
        recovery: RecoverySection,
    ) -> tuple[str, ...]:
        recommendations = [
            f"Agent '{name}' is a bottleneck; split its tasks or run them in parallel"
            for name in bottlenecks
        ]
        for gate in gates:
            recommendations.extend(gate.recommendations)
        for step_id, strategy in recovery.strategies:
            recommendations.append(
                f"Step '{step_id}' needed {strategy}; address the cause before the next run"
            )
        if recovery.escalated and recovery.unrecovered_step:
            recommendations.append(
                f"Step '{recovery.unrecovered_step}' was escalated; resolve it before re-running"
            )
        for step_id in recovery.compensation_failures:
            recommendations.append(
                f"Compensation for '{step_id}' failed; its effects need manual cleanup"
            )
        return tuple(recommendations)


def _elapsed_since(timestamp: str) -> float:
    try:
        started = datetime.fromisoformat(timestamp)
    except ValueError:
        return 0.0
    return max(0.0, (datetime.now(timezone.utc) - started).total_seconds())
