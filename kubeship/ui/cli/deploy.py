"""
CLI commands for building and deploying the app.

Thin wrappers over ``kubeship.core.services`` (images, assembler,
reconciler).
"""

from __future__ import annotations

import click

from kubeship.core.models.config import Flags
from kubeship.core.services.images import BuildOptions
from kubeship.core.services.reconciler import ReconcileOptions
from kubeship.ui.cli.common import (
    Services,
    apply_options,
    emit,
    handle_errors,
    image_options,
    load_services,
    platform_options,
    status,
)


def _deploy(services: Services, *, skip_image_check: bool) -> dict:
    assert services.assembler is not None  # load_services requires the app
    flags = services.settings.flags

    services.assembler.maybe_create_tag()
    descriptor = services.assembler.assemble(skip_image_check=skip_image_check)
    platform = services.platforms.resolve()
    applied = services.reconciler.reconcile(
        descriptor,
        platform,
        ReconcileOptions(dry_run=flags.dry_run, wait_timeout=flags.wait_seconds),
    )
    status(f"✅ Deployment '{applied.name}' applied to {platform}")
    return applied.to_resource()


# ── Images ──────────────────────────────────────────────────────


@click.command()
@click.argument("name")
@click.option("--push", "push_image", is_flag=True, help="Push the image to the registry.")
@image_options
@click.pass_context
@handle_errors
def build(ctx: click.Context, name: str, push_image: bool, kind: str, force_build: bool, no_cache: bool) -> None:
    """Build the image of component NAME (its directory under components/)."""
    flags = Flags(push_image=push_image, kind=kind, force_build=force_build, no_cache=no_cache)
    services = load_services(ctx, flags)
    assert services.builder is not None

    ref = services.builder.build_component(name, BuildOptions.from_settings(services.settings))
    status(f"✅ Component image '{ref}' ready")
    emit(ctx, {"image": str(ref)})


@click.command()
@click.option("--name", "deployment_name", default="", help="Name of the deployment (default: derived from Git).")
@click.option("--version", "version", default="", help="Version of the deployment.")
@click.option("--create-tag", is_flag=True, help="Tag HEAD with the version.")
@click.option("--skip-push", is_flag=True, help="Do not push images to the registry.")
@click.option("--skip-deploy", is_flag=True, help="Only build images, do not deploy.")
@image_options
@platform_options
@apply_options
@click.pass_context
@handle_errors
def publish(
    ctx: click.Context,
    deployment_name: str,
    version: str,
    create_tag: bool,
    skip_push: bool,
    skip_deploy: bool,
    kind: str,
    force_build: bool,
    no_cache: bool,
    namespace: str,
    platform: str,
    dry_run: bool,
    wait_seconds: float,
) -> None:
    """Build and push every component image, then deploy the app."""
    flags = Flags(
        deployment_name=deployment_name,
        version=version,
        create_tag=create_tag,
        push_image=not skip_push,
        skip_deploy=skip_deploy,
        kind=kind,
        force_build=force_build,
        no_cache=no_cache,
        namespace=namespace,
        platform=platform,
        dry_run=dry_run,
        wait_seconds=wait_seconds,
    )
    services = load_services(ctx, flags)
    assert services.builder is not None

    refs = services.builder.publish_all(BuildOptions.from_settings(services.settings))
    status(f"✅ {len(refs)} component image(s) ready")

    if skip_deploy:
        emit(ctx, {"images": [str(r) for r in refs]})
        return
    emit(ctx, _deploy(services, skip_image_check=True))


# ── Deployments ─────────────────────────────────────────────────


@click.command()
@click.argument("name", required=False, default="")
@click.option("--version", "version", default="", help="Version of the deployment.")
@click.option("--create-tag", is_flag=True, help="Tag HEAD with the version.")
@click.option("--kind", default="", help="Load images into this kind cluster.")
@platform_options
@apply_options
@click.pass_context
@handle_errors
def deploy(
    ctx: click.Context,
    name: str,
    version: str,
    create_tag: bool,
    kind: str,
    namespace: str,
    platform: str,
    dry_run: bool,
    wait_seconds: float,
) -> None:
    """Deploy the app at HEAD, building missing images on request."""
    flags = Flags(
        deployment_name=name,
        version=version,
        create_tag=create_tag,
        kind=kind,
        namespace=namespace,
        platform=platform,
        dry_run=dry_run,
        wait_seconds=wait_seconds,
    )
    services = load_services(ctx, flags)
    emit(ctx, _deploy(services, skip_image_check=False))


@click.command()
@click.option("--name", "deployment_name", default="", help="Name of the deployment (default: derived from Git).")
@click.option("--version", "version", default="", help="Version of the deployment.")
@click.option("--skip-image-check", is_flag=True, help="Assume every component image exists.")
@click.pass_context
@handle_errors
def generate(ctx: click.Context, deployment_name: str, version: str, skip_image_check: bool) -> None:
    """Print the AppDeployment for HEAD without applying it."""
    services = load_services(ctx, Flags(deployment_name=deployment_name, version=version))
    assert services.assembler is not None

    descriptor = services.assembler.assemble(skip_image_check=skip_image_check)
    emit(ctx, descriptor.to_resource())
