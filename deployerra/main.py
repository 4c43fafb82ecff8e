"""
Deployerra — CLI entrypoint.

Usage:
    deployerra --help
    deployerra check
    deployerra setup --dry-run
    python -m deployerra setup
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from deployerra import __version__
from deployerra.core.observability.logging_config import setup_logging

_STATUS_STYLE = {
    "found": ("✓", "green"),
    "missing": ("✗", "yellow"),
    "started": ("→", "cyan"),
    "done": ("✅", "green"),
    "failed": ("❌", "red"),
    "skipped": ("⏭️ ", "white"),
    "notice": ("⚠️ ", "yellow"),
}


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="deployerra")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Operator config file (default: /etc/deployerra.yml if present).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Deployerra — bootstrap Docker and the compose plugin on a Linux host."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("DEPLOYERRA_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("DEPLOYERRA_LOG_FILE"),
        log_file_level=os.environ.get("DEPLOYERRA_LOG_FILE_LEVEL"),
    )

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(0)


def _print_progress(topic: str, status: str, message: str) -> None:
    icon, color = _STATUS_STYLE.get(status, ("•", "white"))
    click.secho(f"   {icon} {message}", fg=color)


def _run_kwargs(ctx: click.Context) -> dict:
    """Overrides placed on the context object by embedding callers."""
    kwargs = {}
    for key in ("registry", "os_release"):
        if ctx.obj.get(key) is not None:
            kwargs[key] = ctx.obj[key]
    return kwargs


@cli.command()
@click.option(
    "--password",
    "-p",
    envvar="DEPLOYERRA_SUDO_PASSWORD",
    default=None,
    help="Sudo password, used only if passwordless sudo is unavailable.",
)
@click.option("--dry-run", is_flag=True, help="Probe the host but don't change it.")
@click.option("--strict", is_flag=True, help="Exit non-zero on reported step failures too.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def setup(
    ctx: click.Context,
    password: str | None,
    dry_run: bool,
    strict: bool,
    as_json: bool,
) -> None:
    """Install and configure Docker and the compose plugin."""
    from deployerra.core.use_cases.setup import run_setup

    quiet = ctx.obj.get("quiet", False)
    show_progress = not as_json and not quiet

    if show_progress:
        title = "🐳 Provisioning host" + (" (dry-run)" if dry_run else "")
        click.secho(f"\n{title}", fg="cyan", bold=True)

    result = run_setup(
        config_path=ctx.obj.get("config_path"),
        password=password,
        dry_run=dry_run,
        on_progress=_print_progress if show_progress else None,
        **_run_kwargs(ctx),
    )
    code = result.exit_code(strict=strict)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(code)

    report = result.report
    assert report is not None  # guaranteed after error check above

    if report.fatal_failures or report.reported_failures:
        click.echo()
        click.secho("   Failures:", fg="red", bold=True)
        for outcome in report.fatal_failures + report.reported_failures:
            label = "fatal" if outcome.fatal else "reported"
            click.echo(f"     • {outcome.step} [{label}] {outcome.error}: {outcome.message}")
            if outcome.stderr.strip():
                click.echo(f"       {outcome.stderr.strip().splitlines()[-1]}")
        for outcome in report.fatal_failures:
            click.secho(f"❌ {outcome.message}", fg="red", err=True)

    if report.manual_actions:
        click.echo()
        click.secho("   Manual action required:", fg="yellow", bold=True)
        for action in report.manual_actions:
            click.echo(f"     • {action.reason}. {action.instruction}.")

    if not quiet:
        status_color = {"ok": "green", "partial": "yellow", "failed": "red"}[report.status]
        click.echo()
        click.echo("   Result: ", nl=False)
        click.secho(report.status, fg=status_color, bold=True)
        click.echo()

    sys.exit(code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Show privilege, distro, and capability state without changing anything."""
    from deployerra.core.use_cases.check import run_check

    result = run_check(config_path=ctx.obj.get("config_path"), **_run_kwargs(ctx))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code())

    if result.error:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code())

    click.secho("\n🔍 Host check", fg="cyan", bold=True)
    assert result.privilege is not None
    click.echo(f"   Privilege: {result.privilege}")
    if result.host:
        click.echo(f"   Distro:    {result.host}")
    else:
        click.secho(f"   Distro:    {result.classification_error}", fg="yellow")
    click.echo(f"   User:      {result.user or '(unknown)'}")
    click.echo()

    findings = result.findings
    assert findings is not None
    for label, ok in (
        ("Runtime installed", findings.runtime_installed),
        ("Service active", findings.service_active),
        ("User in group", findings.user_authorized),
        ("Compose plugin", findings.compose_installed),
    ):
        if ok:
            click.secho(f"   ✓ {label}", fg="green")
        else:
            click.secho(f"   ✗ {label}", fg="red")

    click.echo()
    if result.provisioned:
        click.secho("✅ Host is provisioned", fg="green", bold=True)
    else:
        click.secho("⚠️  Host needs provisioning — run `deployerra setup`", fg="yellow")
    click.echo()


if __name__ == "__main__":
    cli()
