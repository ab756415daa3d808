"""
Package installer — helm install, upgrade, render and diff.

Wraps the helm CLI for one release in one namespace. Mutating calls
(install, upgrade) return an InstallResult whose error is already
classified (PackageNotFound / RenderError / ApplyError) so the caller
can decide between aborting and retrying. Nothing is retried here.

The diff is computed locally: deployed manifests (``helm get
manifest``) against proposed ones (``helm template``), resource by
resource, after the same rewrite is applied to both sides. It never
touches cluster state.
"""

from __future__ import annotations

import difflib
import logging
import re

import yaml

from chartverify.adapters.registry import AdapterRegistry
from chartverify.core.errors import (
    ApplyError,
    ClusterUnavailable,
    PackageNotFound,
    RenderError,
    VerifyError,
)
from chartverify.core.models.action import Action, Receipt
from chartverify.core.models.results import (
    InstallResult,
    PackageRef,
    RenderedDiff,
    ResourceChange,
)
from chartverify.core.services.rewrite import Rewrite, identity

logger = logging.getLogger(__name__)

_NOT_FOUND_PATTERNS = (
    re.compile(r"chart .*not found", re.I),
    re.compile(r"no chart (name|version) found", re.I),
    re.compile(r"failed to download", re.I),
    re.compile(r"repo .* not found", re.I),
    re.compile(r"path .* not found", re.I),
    re.compile(r"looks like .* is not a valid chart repository", re.I),
    re.compile(r"invalid chart reference", re.I),
)

_RENDER_PATTERNS = (
    re.compile(r"parse error", re.I),
    re.compile(r"template: ", re.I),
    re.compile(r"execution error at", re.I),
    re.compile(r"yaml: ", re.I),
    re.compile(r"values don't meet the specifications of the schema", re.I),
    re.compile(r"unable to build kubernetes objects from release manifest", re.I),
    re.compile(r"open .*: no such file or directory", re.I),
)

_RELEASE_MISSING = re.compile(r"release: not found", re.I)


def classify_helm_error(stderr: str, *, context: dict | None = None) -> VerifyError:
    """Map helm's stderr onto the error taxonomy."""
    message = (stderr or "helm failed").strip()
    for pattern in _NOT_FOUND_PATTERNS:
        if pattern.search(message):
            return PackageNotFound(message, context=context)
    for pattern in _RENDER_PATTERNS:
        if pattern.search(message):
            return RenderError(message, context=context)
    return ApplyError(message, context=context)


def split_manifests(text: str, default_namespace: str = "") -> dict[str, str]:
    """Index a multi-document manifest stream by resource.

    Keys are ``namespace, name, Kind`` (helm-diff's format); values are
    the document text as rendered.
    """
    resources: dict[str, str] = {}
    for chunk in re.split(r"^---\s*$", text, flags=re.M):
        if not chunk.strip():
            continue
        try:
            doc = yaml.safe_load(chunk)
        except yaml.YAMLError:
            doc = None
        if not isinstance(doc, dict) or "kind" not in doc:
            continue
        metadata = doc.get("metadata") or {}
        key = f"{metadata.get('namespace') or default_namespace}, {metadata.get('name', '')}, {doc['kind']}"
        resources[key] = chunk.strip("\n") + "\n"
    return resources


class PackageInstaller:
    """Helm operations for a single release."""

    def __init__(self, registry: AdapterRegistry, release: str, namespace: str, *, cwd: str | None = None):
        self._registry = registry
        self.release = release
        self.namespace = namespace
        self.cwd = cwd

    # ── Mutating ─────────────────────────────────────────────────

    def install(
        self,
        ref: PackageRef,
        values: list[str] | tuple[str, ...] = (),
        version: str | None = None,
        *,
        upgrade: bool = True,
        timeout: int = 900,
    ) -> InstallResult:
        """Install the chart.

        Args:
            upgrade: True runs ``helm upgrade --install`` (installs if the
                release is absent, upgrades it otherwise). False runs a
                plain ``helm install``, which fails if the release exists.
            timeout: Seconds before the helm process is killed.
        """
        verb = "upgrade" if upgrade else "install"
        args = ["upgrade", "--install"] if upgrade else ["install"]
        args += [self.release, ref.chart]
        args += self._source_args(ref, version)
        args += ["--namespace", self.namespace, "--create-namespace"]
        args += self._values_args(values)

        logger.info("helm %s %s (%s%s)", verb, self.release, ref.describe(), f" {version}" if version else "")
        receipt = self._helm(f"helm:{verb}:{self.release}", args, timeout=timeout)
        return self._to_result(receipt, version)

    def uninstall(self, *, timeout: int = 300) -> InstallResult:
        """``helm uninstall --wait``: remove the release and wait for its resources to go."""
        logger.info("helm uninstall %s (namespace %s)", self.release, self.namespace)
        receipt = self._helm(
            f"helm:uninstall:{self.release}",
            ["uninstall", self.release, "--namespace", self.namespace, "--wait", "--timeout", f"{timeout}s"],
            timeout=timeout + 30,
        )
        return self._to_result(receipt, None)

    # ── Read-only ────────────────────────────────────────────────

    def render(
        self,
        ref: PackageRef,
        values: list[str] | tuple[str, ...] = (),
        version: str | None = None,
        *,
        is_upgrade: bool = False,
        validate: bool = False,
        timeout: int = 300,
    ) -> str:
        """Render manifests without installing anything.

        Raises:
            PackageNotFound, RenderError: helm could not render the chart.
        """
        args = ["template", self.release, ref.chart]
        args += self._source_args(ref, version)
        args += ["--namespace", self.namespace]
        args += self._values_args(values)
        if is_upgrade:
            args.append("--is-upgrade")
        if validate:
            args.append("--validate")

        receipt = self._helm(f"helm:template:{self.release}", args, timeout=timeout, read_only=True)
        if not receipt.ok:
            raise self._classify(receipt)
        return receipt.output

    def current_state(self, *, timeout: int = 300) -> str:
        """Manifests of the deployed release ("" when not installed)."""
        receipt = self._helm(
            f"helm:get-manifest:{self.release}",
            ["get", "manifest", self.release, "--namespace", self.namespace],
            timeout=timeout,
            read_only=True,
        )
        if receipt.ok:
            return receipt.output
        if _RELEASE_MISSING.search(receipt.error or ""):
            return ""
        raise ClusterUnavailable(
            f"Cannot read release {self.release}: {receipt.error}",
            context={"release": self.release, "namespace": self.namespace},
        )

    def diff(
        self,
        ref: PackageRef,
        values: list[str] | tuple[str, ...] = (),
        version: str | None = None,
        *,
        rewrite: Rewrite | None = None,
        context: int = 3,
        timeout: int = 300,
    ) -> RenderedDiff:
        """Diff the deployed release against what ``install`` would apply.

        ``rewrite`` is applied to both sides before comparing.
        """
        rewrite = rewrite or identity
        current_text = self.current_state(timeout=timeout)
        proposed_text = self.render(ref, values, version, is_upgrade=bool(current_text), timeout=timeout)

        current = split_manifests(rewrite(current_text), self.namespace)
        proposed = split_manifests(rewrite(proposed_text), self.namespace)

        changes: list[ResourceChange] = []
        for key in sorted(set(current) | set(proposed)):
            before = current.get(key, "")
            after = proposed.get(key, "")
            if before == after:
                continue
            if not before:
                change = "added"
            elif not after:
                change = "removed"
            else:
                change = "modified"
            text = "".join(
                difflib.unified_diff(
                    before.splitlines(keepends=True),
                    after.splitlines(keepends=True),
                    fromfile=f"deployed/{key}",
                    tofile=f"proposed/{key}",
                    n=context,
                )
            )
            changes.append(ResourceChange(resource=key, change=change, diff=text))

        logger.info("helm diff %s: %d resource(s) changed", self.release, len(changes))
        return RenderedDiff(release=self.release, changes=changes)

    def lint(self, ref: PackageRef, values: list[str] | tuple[str, ...] = (), *, strict: bool = False) -> InstallResult:
        """``helm lint`` the chart with the given values."""
        args = ["lint", ref.chart] + self._values_args(values)
        if strict:
            args.append("--strict")
        receipt = self._helm(f"helm:lint:{self.release}", args, read_only=True)
        return self._to_result(receipt, None)

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _source_args(ref: PackageRef, version: str | None) -> list[str]:
        args: list[str] = []
        if ref.repository:
            args += ["--repo", ref.repository]
        if version and ref.repository:
            # helm ignores --version for local chart directories
            args += ["--version", version]
        return args

    @staticmethod
    def _values_args(values: list[str] | tuple[str, ...]) -> list[str]:
        args: list[str] = []
        for path in values:
            args += ["--values", path]
        return args

    def _helm(self, action_id: str, args: list[str], *, timeout: int = 300, read_only: bool = False) -> Receipt:
        return self._registry.execute(
            Action(
                id=action_id,
                adapter="helm",
                args=args,
                cwd=self.cwd,
                timeout=timeout,
                read_only=read_only,
            )
        )

    def _classify(self, receipt: Receipt) -> VerifyError:
        return classify_helm_error(
            receipt.error or "",
            context={
                "release": self.release,
                "namespace": self.namespace,
                "command": receipt.command,
                "return_code": receipt.return_code,
            },
        )

    def _to_result(self, receipt: Receipt, version: str | None) -> InstallResult:
        if receipt.failed:
            error = self._classify(receipt)
            logger.error("helm %s failed: %s", receipt.action_id, error.message)
            return InstallResult(
                success=False,
                release=self.release,
                version=version,
                output=receipt.output,
                error=error.to_info(),
            )
        return InstallResult(success=True, release=self.release, version=version, output=receipt.output)
