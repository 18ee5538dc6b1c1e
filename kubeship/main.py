"""
kubeship — CLI entrypoint.

Usage:
    kubeship --help
    kubeship build backend --push
    kubeship deploy --version v1.2.3 --wait 120
    kubeship release v1.2.3 --virtual-env dev
"""

from __future__ import annotations

from pathlib import Path

import click

from kubeship import __version__
from kubeship.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="kubeship")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--app",
    "-a",
    "app_path",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Path to the app directory holding app.yaml (default: auto-detect).",
)
@click.option(
    "--config",
    "-c",
    "user_config_path",
    type=click.Path(dir_okay=False),
    default=None,
    envvar="KUBESHIP_CONFIG",
    help="Path to the user config (default: ~/.config/kubeship/config.yaml).",
)
@click.option(
    "--output",
    "-o",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    show_default=True,
    help="Output format of command results.",
)
@click.option(
    "--timeout",
    type=float,
    default=300,
    show_default=True,
    envvar="KUBESHIP_TIMEOUT",
    help="Seconds allowed for all git, docker and kubectl calls of one run (readiness waits use --wait).",
)
@click.option("--registry-address", default="", help="Container registry address.")
@click.option("--registry-username", default="", help="Container registry username.")
@click.option("--registry-token", default="", help="Container registry access token.")
@click.option("--context", "kube_context", default="", help="kubectl context to use.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    app_path: str | None,
    user_config_path: str | None,
    output: str,
    timeout: float,
    registry_address: str,
    registry_username: str,
    registry_token: str,
    kube_context: str,
) -> None:
    """kubeship — build, deploy and release apps onto a KubeFox platform."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["app_path"] = Path(app_path).resolve() if app_path else None
    ctx.obj["user_config_path"] = Path(user_config_path).expanduser() if user_config_path else None
    ctx.obj["output"] = output
    ctx.obj["timeout"] = timeout
    ctx.obj["registry_address"] = registry_address
    ctx.obj["registry_username"] = registry_username
    ctx.obj["registry_token"] = registry_token
    ctx.obj["kube_context"] = kube_context

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        flag_level = "DEBUG"
    elif verbose:
        flag_level = "INFO"
    elif quiet:
        flag_level = "ERROR"
    else:
        flag_level = None

    setup_logging(level=resolve_level(flag_level))


# ── Register command modules ────────────────────────────────────

from kubeship.ui.cli.deploy import build, deploy, generate, publish  # noqa: E402
from kubeship.ui.cli.release import release  # noqa: E402

cli.add_command(build)
cli.add_command(publish)
cli.add_command(deploy)
cli.add_command(generate)
cli.add_command(release)


if __name__ == "__main__":
    cli()
