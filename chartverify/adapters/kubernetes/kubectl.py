"""
Kubectl adapter — read access to the cluster control plane.

Every call is a fresh read; nothing is cached here.
"""

from __future__ import annotations

from chartverify.adapters.shell.command import CommandAdapter


class KubectlAdapter(CommandAdapter):
    """Run kubectl against one context."""

    def __init__(
        self,
        binary: str = "kubectl",
        *,
        context: str = "",
        kubeconfig: str = "",
        request_timeout: int = 15,
    ):
        super().__init__(binary, adapter_name="kubectl")
        self.context = context
        self.kubeconfig = kubeconfig
        self.request_timeout = request_timeout

    def global_args(self) -> list[str]:
        args: list[str] = []
        if self.context:
            args.extend(["--context", self.context])
        if self.kubeconfig:
            args.extend(["--kubeconfig", self.kubeconfig])
        if self.request_timeout:
            args.append(f"--request-timeout={self.request_timeout}s")
        return args
