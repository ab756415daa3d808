"""
Command adapter — run one CLI binary with argument lists.

This is the most fundamental adapter: it runs a command and captures
its output. The helm, kubectl and pytest adapters are thin
subclasses that fix the binary and prepend global flags.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import time

from chartverify.adapters.base import Adapter, ExecutionContext
from chartverify.core.models.action import Receipt

logger = logging.getLogger(__name__)


class CommandAdapter(Adapter):
    """Execute ``<binary> <global args> <action args>`` and capture output.

    Action fields used:
        args (list[str]): Arguments after the binary.
        stdin (str): Optional text fed to the process.
        cwd (str): Override working directory.
        timeout (int): Timeout in seconds.
    """

    def __init__(self, binary: str, *, adapter_name: str | None = None):
        self._binary = binary
        self._name = adapter_name or os.path.basename(binary)

    @property
    def name(self) -> str:
        return self._name

    @property
    def binary(self) -> str:
        return self._binary

    def global_args(self) -> list[str]:
        """Flags inserted between the binary and the action's args."""
        return []

    def build_command(self, context: ExecutionContext) -> list[str]:
        return [self._binary, *self.global_args(), *context.action.args]

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.action.args:
            return False, "Missing command arguments"
        if not all(isinstance(a, str) for a in context.action.args):
            return False, "Command arguments must be strings"
        if context.cwd and not os.path.isdir(context.cwd):
            return False, f"Working directory does not exist: {context.cwd}"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        action = context.action
        command = self.build_command(context)
        cwd = context.cwd
        env = {**os.environ, **context.env} if context.env else None

        logger.debug("Executing: %s (cwd=%s)", shlex.join(command), cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                command,
                input=action.stdin,
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=action.timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command timed out after {action.timeout}s",
                command=command,
                duration_ms=int((time.monotonic() - start) * 1000),
                metadata={"timeout": action.timeout},
            )
        except FileNotFoundError:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"{self._binary} executable not found",
                command=command,
            )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=action.id,
                error=f"Command execution error: {e}",
                command=command,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        stdout = result.stdout or ""
        stderr = (result.stderr or "").strip()

        if result.returncode == 0:
            return Receipt.success(
                adapter=self.name,
                action_id=action.id,
                output=stdout,
                command=command,
                return_code=0,
                duration_ms=elapsed_ms,
                metadata={"stderr": stderr} if stderr else {},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=action.id,
            error=stderr or f"Command exited with code {result.returncode}",
            output=stdout,
            command=command,
            return_code=result.returncode,
            duration_ms=elapsed_ms,
        )
