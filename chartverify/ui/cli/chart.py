"""
CLI commands for the chart under test.

Thin wrappers over ``chartverify.core.services.package_installer`` and
``chartverify.core.services.version_index``.
"""

from __future__ import annotations

import json
import sys

import click


def _load(ctx: click.Context):
    """Load the suite config or exit with its error."""
    from chartverify.core.config.loader import ConfigError, config_root, find_config_file, load_config

    config_path = ctx.obj.get("config_path") or find_config_file()
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.secho(f"❌ {e.message}", fg="red")
        sys.exit(1)
    return config, config_root(config_path)


@click.group("chart")
def chart() -> None:
    """Chart — diff against the deployed release, resolve aliases, lint, validate."""


@chart.command("diff")
@click.option("--from", "from_version", default=None, help="Deployed version (or alias) to normalize away.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def diff(ctx: click.Context, from_version: str | None, as_json: bool) -> None:
    """Show what deploying the local chart would change in the release."""
    from chartverify.core.errors import VerifyError
    from chartverify.core.services.package_installer import PackageInstaller
    from chartverify.core.services.rewrite import string_replacer
    from chartverify.core.services.version_index import VersionIndex
    from chartverify.core.use_cases.run import build_registry, resolve_to_version

    config, root = _load(ctx)
    registry = build_registry(config.connection, root, dry_run=True)
    installer = PackageInstaller(registry, config.release, config.namespace, cwd=str(root))

    try:
        to_version = resolve_to_version(config, root)
        rewrite = None
        if from_version and config.diff.normalize_versions:
            baseline = VersionIndex(config.chart.version_index).resolve(config.chart.name, from_version)
            rewrite = string_replacer(to_version, baseline)
        result = installer.diff(
            config.chart.local_ref,
            config.values,
            to_version,
            rewrite=rewrite,
            context=config.diff.context,
        )
    except VerifyError as e:
        click.secho(f"❌ {e.message}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        return

    if not result.has_changes:
        click.secho(f"✅ No changes to release {config.release}", fg="green")
        return

    for change in result.changes:
        color = {"added": "green", "removed": "red"}.get(change.change, "yellow")
        click.secho(f"{change.resource} ({change.change})", fg=color, bold=True)
        click.echo(change.diff)


@chart.command("resolve")
@click.argument("alias")
@click.pass_context
def resolve(ctx: click.Context, alias: str) -> None:
    """Resolve a version alias (stable, dev) through the version index."""
    from chartverify.core.errors import PackageNotFound
    from chartverify.core.services.version_index import VersionIndex

    config, _root = _load(ctx)
    try:
        version = VersionIndex(config.chart.version_index).resolve(config.chart.name, alias)
    except PackageNotFound as e:
        click.secho(f"❌ {e.message}", fg="red")
        sys.exit(1)
    click.echo(version)


@chart.command("lint")
@click.option("--strict", is_flag=True, help="Fail on lint warnings.")
@click.pass_context
def lint(ctx: click.Context, strict: bool) -> None:
    """helm lint the local chart with the suite values."""
    from chartverify.core.services.package_installer import PackageInstaller
    from chartverify.core.use_cases.run import build_registry

    config, root = _load(ctx)
    registry = build_registry(config.connection, root, dry_run=True)
    installer = PackageInstaller(registry, config.release, config.namespace, cwd=str(root))
    result = installer.lint(config.chart.local_ref, config.values, strict=strict)

    if ctx.obj.get("verbose") or not result.success:
        for line in result.output.split("\n"):
            if line.strip():
                click.echo(f"   │ {line}")

    if result.success:
        click.secho(f"✅ {config.chart.local_ref.describe()} lints clean", fg="green")
        return

    assert result.error is not None
    click.secho(f"❌ {result.error.message}", fg="red")
    sys.exit(1)


@chart.command("validate")
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Render the local chart and validate its manifests against the cluster."""
    from chartverify.core.errors import VerifyError
    from chartverify.core.services.package_installer import PackageInstaller, split_manifests
    from chartverify.core.use_cases.run import build_registry, resolve_to_version

    config, root = _load(ctx)
    registry = build_registry(config.connection, root, dry_run=True)
    installer = PackageInstaller(registry, config.release, config.namespace, cwd=str(root))

    try:
        manifests = installer.render(
            config.chart.local_ref, config.values, resolve_to_version(config, root), validate=True
        )
    except VerifyError as e:
        click.secho(f"❌ {e.message}", fg="red")
        sys.exit(1)

    resources = split_manifests(manifests, config.namespace)
    if ctx.obj.get("verbose"):
        for key in resources:
            click.echo(f"   │ {key}")
    click.secho(f"✅ {len(resources)} resource(s) accepted by the API server", fg="green")
