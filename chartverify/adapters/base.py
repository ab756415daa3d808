"""
Adapter base — the protocol contract between services and tools.

Services only talk to helm, kubectl and the test runner through this
interface, never directly through subprocess.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from chartverify.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    working_dir: str = "."
    env: dict[str, str] = Field(default_factory=dict)

    @property
    def cwd(self) -> str:
        """Action-level cwd wins over the registry default."""
        return self.action.cwd or self.working_dir


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'helm', 'kubectl', 'pytest')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this adapter's underlying tool is installed.

        Should be fast and never raise.
        """

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
