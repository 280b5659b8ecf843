"""
Scripted agents and validators for testing without real executors.

A MockAgent plays back predefined responses in sequence. Each response is
an AgentResult, a plain value used as the result content, an exception
to raise, or a callable computing the result from the task.
"""

import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from agentrelay.domain.interfaces import AgentInterface, ValidatorInterface
from agentrelay.domain.models import (
    AgentResult,
    AgentTask,
    HandoffNotes,
    ValidationOutcome,
    WorkflowContext,
)

AgentScript = Callable[[AgentTask, WorkflowContext, HandoffNotes], Any]


@dataclass(frozen=True)
class AgentCall:
    """One recorded invocation of a MockAgent."""

    task: AgentTask
    instructions: str
    handoff_notes: HandoffNotes


class MockAgent(AgentInterface):
    """Returns predefined responses for testing."""

    def __init__(
        self,
        name: str,
        responses: Sequence[Any] | None = None,
        delay: float = 0.0,
    ):
        """
        Args:
            name: Agent name stamped on produced results
            responses: Responses to play back in sequence; None answers
                every call with a default result
            delay: Seconds to sleep before answering
        """
        self._name = name
        self._responses = list(responses) if responses is not None else None
        self._delay = delay
        self._calls: list[AgentCall] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def execute(
        self,
        task: AgentTask,
        context: WorkflowContext,
        instructions: str,
        handoff_notes: HandoffNotes,
    ) -> AgentResult:
        """Return (or raise) the next predefined response."""
        with self._lock:
            index = len(self._calls)
            self._calls.append(AgentCall(task, instructions, handoff_notes))
        if self._delay:
            time.sleep(self._delay)

        if self._responses is None:
            return AgentResult(agent_name=self._name, content=f"{self._name}:{task.step_id}")
        if index >= len(self._responses):
            raise RuntimeError(f"MockAgent {self._name} exhausted responses")

        response = self._responses[index]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(task, context, handoff_notes)
        if isinstance(response, AgentResult):
            return response
        return AgentResult(agent_name=self._name, content=response)

    @property
    def call_count(self) -> int:
        """Number of times execute() has been called."""
        return len(self._calls)

    @property
    def calls(self) -> tuple[AgentCall, ...]:
        with self._lock:
            return tuple(self._calls)

    def reset(self) -> None:
        """Forget recorded calls to reuse responses."""
        with self._lock:
            self._calls.clear()


class MockValidator(ValidatorInterface):
    """Validator with a fixed verdict, or a fixed infrastructure failure."""

    def __init__(
        self,
        passed: bool = True,
        details: str = "",
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        self._passed = passed
        self._details = details
        self._error = error
        self._delay = delay
        self.calls: list[tuple[tuple[str, ...], tuple[str, ...]]] = []

    def validate(
        self, criteria: tuple[str, ...], artifacts: Mapping[str, AgentResult]
    ) -> ValidationOutcome:
        self.calls.append((tuple(criteria), tuple(artifacts)))
        if self._delay:
            time.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return ValidationOutcome(passed=self._passed, details=self._details)
