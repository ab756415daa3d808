"""
Verification suite — run the external test-suite against the release.

The suite is opaque: it is a pytest run in a separate process. We only
read its exit code and summary line. ``max_failures`` maps to
``--maxfail`` so a broken deployment stops after the first few
failures instead of timing out test after test.
"""

from __future__ import annotations

import logging
import re

from chartverify.adapters.registry import AdapterRegistry
from chartverify.core.errors import VerificationFailure
from chartverify.core.models.action import Action
from chartverify.core.models.results import VerificationReport

logger = logging.getLogger(__name__)

# "3 passed, 2 failed, 1 error, 4 skipped in 3.45s" (any order, any subset)
_COUNT_RE = re.compile(r"(\d+) (passed|failed|errors?|skipped|xfailed|xpassed)")
_DURATION_RE = re.compile(r" in ([\d.]+)s")
_SUMMARY_LINE_RE = re.compile(r"^=*\s*\d+ \w+.* in [\d.]+s")


def parse_pytest_output(output: str, return_code: int | None, *, max_failures: int = 20) -> VerificationReport:
    """Parse pytest output for structured results."""
    counts = {"passed": 0, "failed": 0, "errors": 0, "skipped": 0}
    duration = 0.0

    for line in output.splitlines():
        if not _SUMMARY_LINE_RE.match(line.strip()):
            continue
        for number, word in _COUNT_RE.findall(line):
            key = "errors" if word.startswith("error") else word
            if key in counts:
                counts[key] = int(number)
        match = _DURATION_RE.search(line)
        if match:
            duration = float(match.group(1))

    failures: list[str] = []
    for line in output.splitlines():
        if line.startswith("FAILED ") or line.startswith("ERROR "):
            failures.append(line.split(" ", 1)[1].strip())

    return VerificationReport(
        ok=return_code == 0,
        passed=counts["passed"],
        failed=counts["failed"],
        errors=counts["errors"],
        skipped=counts["skipped"],
        duration_seconds=duration,
        failures=failures[:max_failures],
        return_code=return_code,
        output=output.strip(),
    )


class VerificationSuite:
    """Runs ``pytest --verbose --maxfail=N <path>`` through the pytest adapter."""

    def __init__(
        self,
        registry: AdapterRegistry,
        *,
        test_path: str = "tests",
        workdir: str | None = None,
        max_failures: int = 2,
        extra_args: list[str] | tuple[str, ...] = (),
        timeout: int = 1800,
    ):
        if max_failures < 1:
            raise ValueError("max_failures must be >= 1")
        self._registry = registry
        self.test_path = test_path
        self.workdir = workdir
        self.max_failures = max_failures
        self.extra_args = list(extra_args)
        self.timeout = timeout

    def command_args(self) -> list[str]:
        return [
            "--verbose",
            f"--maxfail={self.max_failures}",
            "--color=no",
            "-rfE",
            *self.extra_args,
            self.test_path,
        ]

    def run(self, *, timeout: int | None = None) -> VerificationReport:
        """Run the suite once. Never raises for test failures.

        ``timeout`` caps the configured suite timeout (the scenario budget left).
        """
        limit = self.timeout if timeout is None else min(self.timeout, timeout)
        receipt = self._registry.execute(
            Action(
                id=f"pytest:{self.test_path}",
                adapter="pytest",
                args=self.command_args(),
                cwd=self.workdir,
                timeout=limit,
            )
        )

        if receipt.skipped:
            return VerificationReport(ok=True, output=receipt.output)

        output = receipt.output
        if receipt.error and receipt.return_code not in (0, None):
            output = f"{output}\n{receipt.error}" if output else receipt.error

        if receipt.return_code is None and receipt.failed:
            # never started or timed out
            report = VerificationReport(ok=False, errors=1, output=receipt.error or "", failures=[receipt.error or ""])
        else:
            report = parse_pytest_output(output, receipt.return_code, max_failures=self.max_failures)

        logger.info("Verification suite: %s", report.summary())
        return report

    @staticmethod
    def raise_for_report(report: VerificationReport) -> None:
        """Raise VerificationFailure if the report is not ok."""
        if report.ok:
            return
        raise VerificationFailure(
            f"Verification suite failed: {report.summary()}",
            context={"failures": report.failures, "return_code": report.return_code},
        )
