"""
chartverify — CLI entrypoint.

Usage:
    chartverify --help
    chartverify run
    chartverify run upgrade-stable --json
    chartverify config check
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from chartverify import __version__
from chartverify.core.observability.logging_config import resolve_level, setup_from_env

_OUTCOME_STYLE = {
    "success": ("✓", "green"),
    "success_with_accepted_failure": ("⚠", "yellow"),
    "failed": ("✗", "red"),
}


@click.group()
@click.version_option(version=__version__, prog_name="chartverify")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to chartverify.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """chartverify — install, upgrade and verify a Helm chart on a live cluster."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_from_env(resolve_level(debug=debug, verbose=verbose, quiet=quiet))


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--no-audit", is_flag=True, help="Don't append results to the audit ledger.")
@click.pass_context
def run(ctx: click.Context, names: tuple[str, ...], as_json: bool, no_audit: bool) -> None:
    """Run the scenario matrix (or only the named scenarios).

    Examples:

        chartverify run

        chartverify run upgrade-stable upgrade-dev

        chartverify -v run install --json
    """
    from chartverify.core.use_cases.run import run_scenarios

    quiet = ctx.obj.get("quiet", False)

    def show_step(descriptor, record) -> None:
        if as_json or quiet:
            return
        color = {"ok": "green", "skipped": "yellow", "failed": "red"}.get(record.status, "white")
        timing = f" ({record.duration_ms}ms)" if record.duration_ms else ""
        click.secho(f"   {descriptor.label}: {record.step.value}", fg=color, nl=False)
        click.echo(f"{timing}  {record.detail}".rstrip())

    result = run_scenarios(
        config_path=ctx.obj.get("config_path"),
        names=list(names) or None,
        audit=not no_audit,
        on_step=show_step,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    click.echo()
    for scenario in result.results:
        icon, color = _OUTCOME_STYLE.get(scenario.outcome.value, ("?", "white"))
        click.secho(f"   {icon} {scenario.descriptor.label}", fg=color, bold=True, nl=False)
        click.echo(f"  {scenario.descriptor.describe()}  [{scenario.outcome.value}]")
        if scenario.error:
            for line in scenario.error.message.split("\n")[:5]:
                click.echo(f"     │ {line}")
        if ctx.obj.get("verbose") and scenario.diff is not None and scenario.diff.has_changes:
            for line in scenario.diff.text.split("\n")[:40]:
                click.echo(f"     │ {line}")
        if scenario.report is not None and scenario.report.unhealthy_workloads:
            click.secho(f"     unhealthy: {', '.join(scenario.report.unhealthy_workloads)}", fg="yellow")

    click.echo()
    passed = len(result.results) - len(result.failed)
    click.secho(
        f"   Result: {passed}/{len(result.results)} scenario(s) passed",
        fg="green" if result.ok else "red",
        bold=True,
    )
    click.echo()

    if not result.ok:
        sys.exit(1)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def scenarios(ctx: click.Context, as_json: bool) -> None:
    """List the configured scenarios."""
    from chartverify.core.config.loader import ConfigError, load_config

    try:
        config = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e.message}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([s.model_dump(mode="json") for s in config.scenarios], indent=2))
        return

    click.secho(f"\n📋 {config.release} → namespace {config.namespace}", fg="cyan", bold=True)
    for scenario in config.scenarios:
        baseline = f" from {scenario.upgrade_from}" if scenario.upgrade_from else ""
        soft = " (soft-fail)" if scenario.soft_fail else ""
        context = f"  @{scenario.context}" if scenario.context else ""
        click.echo(f"   • {scenario.name}: {scenario.mode.value}{baseline}{soft}{context}")
    click.echo()


@cli.command()
@click.option("-n", "count", default=20, show_default=True, help="Number of entries.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent scenario results from the audit ledger."""
    from chartverify.core.config.loader import config_root, find_config_file
    from chartverify.core.persistence.audit import AuditWriter

    config_path: Path | None = ctx.obj.get("config_path") or find_config_file()
    root = config_root(config_path) if config_path else Path.cwd()
    entries = AuditWriter(root=root).read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No scenario runs recorded yet.")
        return

    for entry in entries:
        icon, color = _OUTCOME_STYLE.get(entry.outcome, ("?", "white"))
        versions = f"{entry.from_version} → {entry.to_version}" if entry.from_version else entry.to_version
        click.secho(f"{icon} ", fg=color, nl=False)
        click.echo(f"{entry.timestamp[:19]}  {entry.run_id}  {entry.scenario}  {versions}  [{entry.outcome}]")


@cli.group()
def config() -> None:
    """Suite configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate chartverify.yml."""
    from chartverify.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Release: {result.config.release} ({result.config.namespace})")
        click.echo(f"   Scenarios: {len(result.config.scenarios)}")
        click.echo(f"   Dependencies: {len(result.config.dependencies)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if not result.valid:
        sys.exit(1)


# ── Register sub-command groups from chartverify/ui/cli/ ──────────

from chartverify.ui.cli.chart import chart  # noqa: E402
from chartverify.ui.cli.cluster import cluster  # noqa: E402

cli.add_command(chart)
cli.add_command(cluster)


if __name__ == "__main__":
    cli()
