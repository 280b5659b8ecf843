"""
QualityGateOrchestrator: evaluates named multi-validator checkpoints.

A gate is the logical AND of its validators. There is no partial credit:
a validator that fails its criteria, or one that cannot complete because
of an infrastructure error (indeterminate), fails the gate.
"""

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

from agentrelay.application.workflow_event_emitter import WorkflowEventEmitter
from agentrelay.domain.interfaces import ValidatorInterface
from agentrelay.domain.models import (
    AgentResult,
    CheckVerdict,
    GateCheckResult,
    QualityGate,
    QualityGateResult,
    ValidationOutcome,
    WorkflowContext,
)

logger = logging.getLogger("agentrelay.gates")


class QualityGateOrchestrator:
    """Runs a gate's validators concurrently and aggregates the verdicts."""

    def __init__(
        self,
        validators: Mapping[str, ValidatorInterface] | None = None,
        max_workers: int = 4,
    ):
        """
        Args:
            validators: Validator library (name -> ValidatorInterface)
            max_workers: Concurrency limit for one gate evaluation
        """
        self._validators = dict(validators or {})
        self._max_workers = max_workers

    def criteria_for(self, gate: QualityGate, context: WorkflowContext) -> tuple[str, ...]:
        """Gate criteria plus the cross-cutting requirements it consults."""
        criteria = list(gate.criteria)
        for category in gate.concerns:
            criteria.extend(
                f"{category}: {item}"
                for item in context.cross_cutting_concerns.get(category, ())
            )
        return tuple(criteria)

    def evaluate(
        self,
        gate: QualityGate,
        context: WorkflowContext,
        artifacts: Mapping[str, AgentResult] | None = None,
        emitter: WorkflowEventEmitter | None = None,
    ) -> QualityGateResult:
        """
        Evaluate a gate against the workflow's artifacts.

        Args:
            gate: Gate definition
            context: Workflow context (criteria and concerns)
            artifacts: Artifacts to validate (defaults to all committed ones)
            emitter: Optional event emitter for GATE_EVALUATED

        Returns:
            QualityGateResult with per-check details and recommendations
        """
        if artifacts is None:
            artifacts = dict(context.artifacts)
        criteria = self.criteria_for(gate, context)

        if not gate.validators:
            checks: tuple[GateCheckResult, ...] = ()
        else:
            workers = min(self._max_workers, len(gate.validators))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(self._run_check, name, criteria, artifacts)
                    for name in gate.validators
                ]
                checks = tuple(f.result() for f in futures)

        passed = bool(checks) and all(c.verdict is CheckVerdict.PASSED for c in checks)
        result = QualityGateResult(
            gate_name=gate.name,
            passed=passed,
            checks=checks,
            recommendations=self._recommendations(gate, checks),
        )
        if passed:
            logger.info("Gate %s passed", gate.name)
        else:
            logger.warning("Gate %s failed: %s", gate.name, ", ".join(result.failed_checks) or "no validators")
        if emitter is not None:
            emitter.gate_evaluated(result)
        return result

    def _run_check(
        self,
        name: str,
        criteria: tuple[str, ...],
        artifacts: Mapping[str, AgentResult],
    ) -> GateCheckResult:
        validator = self._validators.get(name)
        if validator is None:
            return GateCheckResult(
                validator=name,
                verdict=CheckVerdict.INDETERMINATE,
                details=f"Validator '{name}' is not registered",
            )
        try:
            outcome = validator.validate(criteria, artifacts)
        except Exception as e:
            logger.warning("Validator %s could not complete: %s", name, e)
            return GateCheckResult(
                validator=name,
                verdict=CheckVerdict.INDETERMINATE,
                details=f"{type(e).__name__}: {e}",
            )
        if not isinstance(outcome, ValidationOutcome):
            return GateCheckResult(
                validator=name,
                verdict=CheckVerdict.INDETERMINATE,
                details=f"Validator returned {type(outcome).__name__}",
            )
        return GateCheckResult(
            validator=name,
            verdict=CheckVerdict.PASSED if outcome.passed else CheckVerdict.FAILED,
            details=outcome.details,
        )

    @staticmethod
    def _recommendations(
        gate: QualityGate, checks: tuple[GateCheckResult, ...]
    ) -> tuple[str, ...]:
        if not checks:
            return (f"Gate '{gate.name}' has no validators; add at least one",)
        recommendations = []
        for check in checks:
            if check.verdict is CheckVerdict.FAILED:
                recommendations.append(
                    f"{check.validator}: {check.details or 'criteria not met'}"
                )
            elif check.verdict is CheckVerdict.INDETERMINATE:
                recommendations.append(
                    f"Re-run {check.validator} once its infrastructure is available "
                    f"({check.details})"
                )
        return tuple(recommendations)
