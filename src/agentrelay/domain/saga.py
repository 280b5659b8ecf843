"""
Saga ledger: ordered (forward result, compensating action) pairs.

Entries are appended as steps complete and walked in reverse when a
workflow cannot recover.
"""

import threading
from collections.abc import Iterator
from dataclasses import dataclass

from agentrelay.domain.models import AgentResult, CompensatingAction


@dataclass(frozen=True)
class SagaEntry:
    """A completed step and the action that undoes it."""

    step_id: str
    result: AgentResult
    compensate: CompensatingAction | None


class SagaLedger:
    """Append-only record of completed steps in completion order."""

    def __init__(self) -> None:
        self._entries: list[SagaEntry] = []
        self._lock = threading.Lock()

    def record(
        self,
        step_id: str,
        result: AgentResult,
        compensate: CompensatingAction | None,
    ) -> None:
        with self._lock:
            self._entries.append(SagaEntry(step_id, result, compensate))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[SagaEntry]:
        return iter(tuple(self._entries))

    def reversed(self) -> tuple[SagaEntry, ...]:
        """Entries in reverse completion order."""
        with self._lock:
            return tuple(reversed(self._entries))

    @property
    def step_ids(self) -> tuple[str, ...]:
        return tuple(entry.step_id for entry in self._entries)
