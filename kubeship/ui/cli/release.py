"""
CLI command for releasing a deployment into a virtual environment.

Thin wrapper over ``kubeship.core.services.release``.
"""

from __future__ import annotations

import click

from kubeship.core.models.config import Flags
from kubeship.core.services.release import ReleaseOptions
from kubeship.ui.cli.common import (
    apply_options,
    emit,
    handle_errors,
    load_services,
    platform_options,
    status,
)


@click.command()
@click.argument("identifier")
@click.option("--virtual-env", "-e", "virtual_env", required=True, help="Virtual environment to release to.")
@click.option("--snapshot", default="", help="Pin the release to this existing snapshot.")
@click.option("--create-snapshot", is_flag=True, help="Snapshot the environment data and pin the release to it.")
@platform_options
@apply_options
@click.pass_context
@handle_errors
def release(
    ctx: click.Context,
    identifier: str,
    virtual_env: str,
    snapshot: str,
    create_snapshot: bool,
    namespace: str,
    platform: str,
    dry_run: bool,
    wait_seconds: float,
) -> None:
    """Release the deployment matching IDENTIFIER.

    IDENTIFIER is a deployment name, a commit (full or short), a version,
    a tag or a branch.
    """
    if snapshot and create_snapshot:
        raise click.UsageError("--snapshot and --create-snapshot are mutually exclusive")

    flags = Flags(
        virtual_env=virtual_env,
        snapshot=snapshot,
        create_snapshot=create_snapshot,
        namespace=namespace,
        platform=platform,
        dry_run=dry_run,
        wait_seconds=wait_seconds,
    )
    services = load_services(ctx, flags, require_app=False)

    binding = services.releases.release(
        identifier,
        ReleaseOptions(
            virtual_env=virtual_env,
            snapshot=snapshot,
            create_snapshot=create_snapshot,
            dry_run=dry_run,
            wait_timeout=wait_seconds,
        ),
    )
    status(f"✅ Released '{binding.deployment_name}' to '{virtual_env}'")
    emit(ctx, binding.model_dump())
