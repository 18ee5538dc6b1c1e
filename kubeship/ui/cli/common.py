"""
Shared CLI plumbing — settings, service wiring, output and errors.

Every command builds one ``Settings`` value from its options and the
group's ``ctx.obj``, wires the services it needs around it, and reports
``KubeshipError`` failures the same way.
"""

from __future__ import annotations

import functools
import json
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
import yaml

from kubeship.adapters.cluster.kubectl import KubectlOrchestrator
from kubeship.adapters.containers.docker import DockerEngine
from kubeship.adapters.prompt import ClickPrompter
from kubeship.adapters.vcs.git import GitRepository
from kubeship.core.config.loader import (
    app_root,
    build_settings,
    find_app_file,
    load_app,
    load_user_config,
)
from kubeship.core.deadline import Deadline
from kubeship.core.errors import Cancelled, ConfigError, KubeshipError
from kubeship.core.models.app import App
from kubeship.core.models.config import Flags, Settings
from kubeship.core.services.assembler import DeploymentAssembler
from kubeship.core.services.identity import IdentityDeriver
from kubeship.core.services.images import ImageBuilder
from kubeship.core.services.platform import PlatformResolver
from kubeship.core.services.reconciler import Reconciler
from kubeship.core.services.release import ReleaseResolver


# ── Options shared by several commands ──────────────────────────


def platform_options(fn: Callable) -> Callable:
    fn = click.option("--namespace", "-n", default="", help="Namespace of the platform.")(fn)
    fn = click.option("--platform", "-p", default="", help="Name of the platform.")(fn)
    return fn


def apply_options(fn: Callable) -> Callable:
    fn = click.option(
        "--wait", "wait_seconds", type=float, default=0,
        help="Seconds to wait for workloads to become ready (0 = don't wait).",
    )(fn)
    fn = click.option("--dry-run", is_flag=True, help="Validate against the cluster without persisting.")(fn)
    return fn


def image_options(fn: Callable) -> Callable:
    fn = click.option("--kind", default="", help="Load images into this kind cluster.")(fn)
    fn = click.option("--force", "force_build", is_flag=True, help="Build even if the image exists.")(fn)
    fn = click.option("--no-cache", is_flag=True, help="Build without the layer cache.")(fn)
    return fn


# ── Context ─────────────────────────────────────────────────────


@dataclass
class Services:
    """Everything a command may need, wired around one ``Settings``."""

    settings: Settings
    app: App | None
    deadline: Deadline
    vcs: GitRepository | None
    engine: DockerEngine
    orchestrator: KubectlOrchestrator
    prompter: ClickPrompter
    builder: ImageBuilder | None
    assembler: DeploymentAssembler | None
    reconciler: Reconciler
    platforms: PlatformResolver
    releases: ReleaseResolver


def _locate_app(ctx: click.Context) -> Path | None:
    explicit: Path | None = ctx.obj.get("app_path")
    if explicit is not None:
        return explicit
    found = find_app_file()
    return app_root(found) if found else None


def load_services(ctx: click.Context, flags: Flags, *, require_app: bool = True) -> Services:
    """Build ``Settings`` for this invocation and wire the services."""
    obj = ctx.obj
    deadline = Deadline(obj.get("timeout", 300))

    app_path = _locate_app(ctx)
    app: App | None = None
    vcs: GitRepository | None = None
    if app_path is not None:
        app = load_app(app_path)
        vcs = GitRepository.discover(app_path, deadline)
    elif require_app:
        raise ConfigError("No app.yaml found. Run from inside an app directory, or pass --app.")

    user_config_path = obj.get("user_config_path")
    settings = build_settings(
        repo_path=vcs.root if vcs else Path.cwd(),
        app_path=app_path or Path.cwd(),
        app=app or App(name="unnamed"),
        user_config=load_user_config(user_config_path),
        flags=flags,
        registry_address=obj.get("registry_address", ""),
        registry_username=obj.get("registry_username", ""),
        registry_token=obj.get("registry_token", ""),
        user_config_path=user_config_path,
    )

    engine = DockerEngine(deadline)
    orchestrator = KubectlOrchestrator(deadline, context=obj.get("kube_context", ""))
    prompter = ClickPrompter()
    reconciler = Reconciler(settings, orchestrator)
    platforms = PlatformResolver(settings, orchestrator, prompter)

    builder = assembler = None
    if app is not None and vcs is not None:
        builder = ImageBuilder(settings, app, engine, vcs, IdentityDeriver(vcs))
        assembler = DeploymentAssembler(settings, app, vcs, engine, builder, prompter)

    return Services(
        settings=settings,
        app=app,
        deadline=deadline,
        vcs=vcs,
        engine=engine,
        orchestrator=orchestrator,
        prompter=prompter,
        builder=builder,
        assembler=assembler,
        reconciler=reconciler,
        platforms=platforms,
        releases=ReleaseResolver(settings, orchestrator, prompter, reconciler, platforms, app),
    )


# ── Output ──────────────────────────────────────────────────────


def emit(ctx: click.Context, data: Any) -> None:
    """Print a command result as YAML (default) or JSON on stdout."""
    if ctx.obj.get("output") == "json":
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(yaml.safe_dump(data, sort_keys=False, default_flow_style=False).rstrip())


def status(message: str, fg: str = "green") -> None:
    """Progress line on stderr, unless ``--quiet``."""
    ctx = click.get_current_context(silent=True)
    if ctx is not None and ctx.find_root().obj and ctx.find_root().obj.get("quiet"):
        return
    click.secho(message, fg=fg, err=True)


def handle_errors(fn: Callable) -> Callable:
    """Turn ``KubeshipError`` into a red message and a non-zero exit."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except KeyboardInterrupt:
            err: KubeshipError = Cancelled("Interrupted")
        except KubeshipError as e:
            err = e
        click.secho(f"❌ {err}", fg="red", err=True)
        sys.exit(err.exit_code)

    return wrapper
