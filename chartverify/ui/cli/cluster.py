"""
CLI commands for the target cluster.

Thin wrappers over ``chartverify.core.services.readiness`` and
``chartverify.core.services.report_collector``.
"""

from __future__ import annotations

import json
import sys

import click


def _connect(ctx: click.Context):
    """Load the config and open a cluster session, or exit with the error."""
    from chartverify.core.config.loader import config_root, find_config_file, load_config
    from chartverify.core.errors import VerifyError
    from chartverify.core.services.cluster_session import ClusterSession
    from chartverify.core.use_cases.run import build_registry

    config_path = ctx.obj.get("config_path") or find_config_file()
    try:
        config = load_config(config_path)
        root = config_root(config_path)
        session = ClusterSession.connect(config.connection, build_registry(config.connection, root))
    except VerifyError as e:
        click.secho(f"❌ {e.message}", fg="red")
        sys.exit(1)
    return config, session


@click.group("cluster")
def cluster() -> None:
    """Cluster — wait for readiness, snapshot the namespace."""


@cluster.command("await")
@click.option("--baseline", is_flag=True, help="Use the baseline readiness conditions.")
@click.option("--timeout", type=float, default=None, help="Overall budget in seconds.")
@click.pass_context
def await_ready(ctx: click.Context, baseline: bool, timeout: float | None) -> None:
    """Block until the release's readiness conditions hold."""
    import time

    from chartverify.core.errors import ReadinessTimeout
    from chartverify.core.services.readiness import ReadinessProbe

    config, session = _connect(ctx)
    conditions = config.baseline_conditions() if baseline else config.readiness_conditions()
    probe = ReadinessProbe(session, namespace=config.namespace)
    deadline = time.monotonic() + timeout if timeout else None

    try:
        outcomes = probe.wait_for_all(conditions, deadline=deadline)
    except ReadinessTimeout as e:
        click.secho(f"❌ {e.message}", fg="red")
        for key, value in e.last_observed.items():
            click.echo(f"   │ {key}: {value}")
        sys.exit(1)

    for outcome in outcomes:
        click.secho(f"   ✓ {outcome.condition}", fg="green", nl=False)
        click.echo(f"  ({outcome.attempts} check(s), {outcome.elapsed_seconds:.1f}s)")
    if not outcomes:
        click.echo("No readiness conditions configured.")


@cluster.command("report")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def report(ctx: click.Context, as_json: bool) -> None:
    """Snapshot workloads, pods, events and logs of the namespace."""
    from chartverify.core.services.report_collector import ReportCollector

    config, session = _connect(ctx)
    collector = ReportCollector(log_tail=config.report.log_tail, event_limit=config.report.event_limit)
    snapshot = collector.collect(session, config.namespace, config.report.workloads)

    if as_json:
        click.echo(json.dumps(snapshot.to_dict(), indent=2))
        return

    click.secho(f"\n☸️  Namespace {snapshot.namespace}", fg="cyan", bold=True)
    for name, summary in sorted(snapshot.workloads.items()):
        color = "green" if summary.status == "rolled-out" else "yellow"
        click.secho(f"   {name}: {summary.status}", fg=color, nl=False)
        click.echo(f"  {summary.detail}")

    if snapshot.pods:
        click.secho("\n   Pods:", fg="cyan")
        for pod in snapshot.pods:
            click.echo(f"     • {pod.name}  {pod.phase}  restarts={pod.restarts}")

    if snapshot.events:
        click.secho("\n   Events:", fg="cyan")
        for event in snapshot.events:
            click.echo(f"     • {event.type} {event.reason} {event.object}: {event.message}")

    if ctx.obj.get("verbose"):
        for ref, text in snapshot.logs.items():
            click.secho(f"\n   Logs of {ref}:", fg="cyan")
            for line in text.split("\n"):
                click.echo(f"     │ {line}")

    for error in snapshot.errors:
        click.secho(f"   ⚠ {error}", fg="yellow")
    click.echo()
