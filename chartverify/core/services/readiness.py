"""
Readiness probe — poll a condition until it holds or time runs out.

The probe is the only place a scenario blocks. It sleeps a fixed
interval between observations, never busy-waits and never holds a
lock, so diagnostics can read the cluster while a wait is in flight.

A failed read (kubectl hiccup, connection refused) is an observation
like any other: it is recorded and polling continues.
"""

from __future__ import annotations

import logging
import time
import urllib.error
import urllib.request
from typing import Any, Callable

from chartverify.core.errors import ReadinessTimeout, ScenarioDeadlineExceeded, VerifyError
from chartverify.core.models.readiness import ConditionKind, ProbeOutcome, ReadinessCondition
from chartverify.core.services.cluster_session import ClusterSession

logger = logging.getLogger(__name__)

Observation = tuple[bool, dict[str, Any]]


def http_status(url: str, timeout: float = 5.0) -> int:
    """GET ``url`` and return the HTTP status code.

    HTTP error statuses are returned, not raised. Connection problems
    raise ``OSError`` (``urllib.error.URLError`` is one).
    """
    req = urllib.request.Request(url, method="GET", headers={"User-Agent": "chartverify/1.0"})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.getcode()
    except urllib.error.HTTPError as e:
        return e.code


class ReadinessProbe:
    """Evaluates ReadinessConditions against a cluster session."""

    def __init__(
        self,
        session: ClusterSession,
        *,
        namespace: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        http_get: Callable[[str], int] = http_status,
    ):
        self.session = session
        self.namespace = namespace
        self._clock = clock
        self._sleep = sleep
        self._http_get = http_get

    def wait_for(self, condition: ReadinessCondition, *, deadline: float | None = None) -> ProbeOutcome:
        """Block until ``condition`` holds.

        Args:
            condition: What to wait for.
            deadline: Optional absolute clock value (scenario budget) that
                caps the condition's own timeout.

        Raises:
            ReadinessTimeout: the condition did not hold within its timeout.
            ScenarioDeadlineExceeded: the scenario deadline ran out first.
        """
        start = self._clock()
        limit = start + condition.timeout
        capped_by_deadline = deadline is not None and deadline < limit
        end = deadline if capped_by_deadline else limit

        attempts = 0
        observed: dict[str, Any] = {}
        while True:
            attempts += 1
            held, observed = self.check(condition)
            now = self._clock()
            if held:
                logger.info(
                    "✓ %s (after %d check(s), %.1fs)",
                    condition.describe(), attempts, now - start,
                )
                return ProbeOutcome(
                    condition=condition.describe(),
                    attempts=attempts,
                    elapsed_seconds=now - start,
                    last_observed=observed,
                )

            logger.debug("… %s not ready: %s", condition.describe(), observed)
            if now >= end:
                break
            self._sleep(min(condition.poll_interval, end - now))

        elapsed = self._clock() - start
        if capped_by_deadline:
            raise ScenarioDeadlineExceeded(
                f"Scenario deadline reached while waiting for {condition.describe()}",
                last_observed=observed,
                context={"condition": condition.describe(), "attempts": attempts},
            )
        raise ReadinessTimeout(
            f"Timed out after {elapsed:.0f}s waiting for {condition.describe()}",
            last_observed=observed,
            context={
                "condition": condition.describe(),
                "attempts": attempts,
                "timeout": condition.timeout,
            },
        )

    def wait_for_all(
        self,
        conditions: list[ReadinessCondition],
        *,
        deadline: float | None = None,
    ) -> list[ProbeOutcome]:
        """Wait for each condition in order; the first failure propagates."""
        return [self.wait_for(c, deadline=deadline) for c in conditions]

    # ── Predicates ───────────────────────────────────────────────

    def check(self, condition: ReadinessCondition) -> Observation:
        """Evaluate the condition once: (holds, observed state)."""
        namespace = condition.namespace or self.namespace
        try:
            if condition.kind is ConditionKind.WORKLOAD_ROLLOUT:
                return self._check_rollout(condition, namespace)
            if condition.kind is ConditionKind.SECRET_PRESENCE:
                return self._check_secret(condition, namespace)
            return self._check_service(condition)
        except VerifyError as e:
            return False, {"error": e.message}

    def _check_rollout(self, condition: ReadinessCondition, namespace: str) -> Observation:
        observed: dict[str, Any] = {}
        held = True
        for ref in condition.targets:
            workload = self.session.get_workload(ref, namespace)
            if workload is None:
                observed[ref] = "missing"
                held = False
                continue
            observed[ref] = workload.summary()
            if not workload.rolled_out:
                held = False
        return held, observed

    def _check_secret(self, condition: ReadinessCondition, namespace: str) -> Observation:
        assert condition.secret_key is not None  # validated by the model
        secret = self.session.get_secret(condition.target_name, namespace)
        observed = {
            "exists": secret.exists,
            "non_empty_keys": secret.non_empty_keys,
        }
        return secret.key_non_empty(condition.secret_key), observed

    def _check_service(self, condition: ReadinessCondition) -> Observation:
        assert condition.url is not None  # validated by the model
        try:
            status = self._http_get(condition.url)
        except (OSError, ValueError) as e:
            return False, {"url": condition.url, "error": str(e)}
        return status < 500, {"url": condition.url, "status": status}
