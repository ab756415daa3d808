"""
Action and Receipt models — the tool execution contract.

Services never shell out directly. They describe a tool invocation as
an Action (which adapter, which arguments) and get a Receipt back.
Adapters capture every failure in the Receipt; they never raise.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Action(BaseModel):
    """A single tool invocation.

    ``id`` is descriptive and stable (``helm:install:jupyterhub``) so
    receipts can be matched in logs, the audit ledger and test doubles.
    """

    id: str
    adapter: str                    # helm, kubectl, pytest, shell
    args: list[str] = Field(default_factory=list)
    stdin: str | None = None
    cwd: str | None = None
    timeout: int = 300              # seconds
    read_only: bool = False         # safe to run during --dry-run
    params: dict[str, Any] = Field(default_factory=dict)


class Receipt(BaseModel):
    """Result of running an Action."""

    adapter: str
    action_id: str
    status: Literal["ok", "skipped", "failed"] = "ok"

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    command: list[str] = Field(default_factory=list)
    return_code: int | None = None
    output: str = ""                # stdout
    error: str | None = None        # stderr or failure reason

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def success(
        cls,
        adapter: str,
        action_id: str,
        output: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a success receipt."""
        kwargs.setdefault("return_code", 0)
        return cls(adapter=adapter, action_id=action_id, status="ok", output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        adapter: str,
        action_id: str,
        error: str,
        **kwargs: Any,
    ) -> Receipt:
        """Create a failure receipt."""
        return cls(adapter=adapter, action_id=action_id, status="failed", error=error, **kwargs)

    @classmethod
    def skip(
        cls,
        adapter: str,
        action_id: str,
        reason: str = "",
        **kwargs: Any,
    ) -> Receipt:
        """Create a skip receipt (dry-run)."""
        return cls(adapter=adapter, action_id=action_id, status="skipped", output=reason, **kwargs)
