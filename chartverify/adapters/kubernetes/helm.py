"""
Helm adapter — the package templating and deploy tool.

Uses the helm CLI only. Cluster selection (kube context, kubeconfig)
is applied to every invocation so one adapter instance is bound to
one cluster.
"""

from __future__ import annotations

from chartverify.adapters.shell.command import CommandAdapter


class HelmAdapter(CommandAdapter):
    """Run helm with the session's cluster selection."""

    def __init__(self, binary: str = "helm", *, kube_context: str = "", kubeconfig: str = ""):
        super().__init__(binary, adapter_name="helm")
        self.kube_context = kube_context
        self.kubeconfig = kubeconfig

    def global_args(self) -> list[str]:
        args: list[str] = []
        if self.kube_context:
            args.extend(["--kube-context", self.kube_context])
        if self.kubeconfig:
            args.extend(["--kubeconfig", self.kubeconfig])
        return args
