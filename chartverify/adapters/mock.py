"""
Mock adapter — universal test double for tool invocations.

Used by the test-suite and by ``--mock`` runs to simulate helm,
kubectl and pytest without touching a cluster. Responses are
scripted per action ID; a queue of responses models state that
changes between polls (a rollout converging, a secret appearing).
"""

from __future__ import annotations

from collections import deque

from chartverify.adapters.base import Adapter, ExecutionContext
from chartverify.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success with ``default_output``. Responses are
    looked up by exact action ID first, then by ID prefix.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._queues: dict[str, deque[Receipt]] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_for(self, action_id: str) -> list[ExecutionContext]:
        """Calls whose action ID starts with ``action_id``."""
        return [c for c in self._call_log if c.action.id.startswith(action_id)]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        """Always answer ``action_id`` with ``receipt``."""
        self._responses[action_id] = receipt

    def set_output(self, action_id: str, output: str) -> None:
        """Answer ``action_id`` with a success carrying ``output``."""
        self._responses[action_id] = Receipt.success(
            adapter=self._name, action_id=action_id, output=output
        )

    def set_failure(self, action_id: str, error: str = "Mock failure", return_code: int = 1) -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
            return_code=return_code,
        )

    def queue_responses(self, action_id: str, receipts: list[Receipt]) -> None:
        """Answer successive calls with ``receipts`` in order.

        Once the queue is drained the last receipt keeps being returned.
        """
        self._queues[action_id] = deque(receipts)

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)
        action_id = context.action.id

        receipt = self._lookup(action_id)
        if receipt is None:
            return Receipt.success(
                adapter=self._name,
                action_id=action_id,
                output=self._default_output,
                metadata={"mock": True},
            )
        return receipt.model_copy(update={"action_id": action_id})

    def _lookup(self, action_id: str) -> Receipt | None:
        for key in self._matching_keys(action_id, self._queues):
            queue = self._queues[key]
            if len(queue) > 1:
                return queue.popleft()
            if queue:
                return queue[0]
        for key in self._matching_keys(action_id, self._responses):
            return self._responses[key]
        return None

    @staticmethod
    def _matching_keys(action_id: str, table: dict) -> list[str]:
        """Exact match first, then the longest matching prefix."""
        if action_id in table:
            return [action_id]
        prefixes = [k for k in table if action_id.startswith(k)]
        return sorted(prefixes, key=len, reverse=True)[:1]

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()
        self._queues.clear()
