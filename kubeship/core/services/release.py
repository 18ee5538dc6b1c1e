"""
Release resolver — activate one deployment in a virtual environment.

A release finds the deployment the operator means (by exact name, or by
commit, short commit, version, tag or branch label), checks it against
the environment's data, optionally pins that data in an immutable
snapshot, and writes the binding onto the ``VirtualEnv``.
"""

from __future__ import annotations

import copy
import hashlib
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kubeship.adapters.base import Orchestrator, Prompter
from kubeship.core.errors import (
    ApplyConflict,
    ConfigError,
    NoMatch,
    ReleaseAborted,
    ResourceNotFound,
    ValidationProblems,
)
from kubeship.core.models.app import App
from kubeship.core.models.config import Settings
from kubeship.core.models.deployment import DeploymentDescriptor
from kubeship.core.models.release import EnvironmentSnapshot, ReleaseBinding, TargetPlatform
from kubeship.core.models.resources import (
    LABEL_APP_BRANCH,
    LABEL_APP_COMMIT,
    LABEL_APP_COMMIT_SHORT,
    LABEL_APP_NAME,
    LABEL_APP_TAG,
    LABEL_APP_VERSION,
    LABEL_SOURCE_RESOURCE_VERSION,
    LABEL_VIRTUAL_ENV,
    ResourceKind,
    label_value,
    release_spec,
    snapshot_resource,
)
from kubeship.core.naming import clean_name, is_valid_name
from kubeship.core.services.merge import three_way_merge
from kubeship.core.services.platform import PlatformResolver
from kubeship.core.services.reconciler import Reconciler
from kubeship.core.services.validation import validate

logger = logging.getLogger(__name__)

MAX_BIND_ATTEMPTS = 3

_FULL_COMMIT = re.compile(r"^[0-9a-f]{40}$")
_SHORT_COMMIT = re.compile(r"^[0-9a-f]{7}$")


def _when(pattern: re.Pattern[str]) -> Callable[[str], str]:
    return lambda identifier: identifier if pattern.match(identifier) else ""


# Index labels tried in order when the identifier is not a deployment
# name. Each matcher maps the identifier to the label value to search
# for, or "" when the identifier cannot be such a value.
INDEX_KEYS: list[tuple[str, Callable[[str], str]]] = [
    (LABEL_APP_COMMIT, _when(_FULL_COMMIT)),
    (LABEL_APP_COMMIT_SHORT, _when(_SHORT_COMMIT)),
    (LABEL_APP_VERSION, label_value),
    (LABEL_APP_TAG, label_value),
    (LABEL_APP_BRANCH, label_value),
]


@dataclass(frozen=True)
class ReleaseOptions:
    virtual_env: str
    snapshot: str = ""
    create_snapshot: bool = False
    dry_run: bool = False
    wait_timeout: float = 0


def data_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of *data*."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def merge_environment_data(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Layer *override* over *base*, section by section (``vars``, ``secrets``)."""
    merged = copy.deepcopy(base)
    for section, values in (override or {}).items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section] = {**merged[section], **values}
        else:
            merged[section] = copy.deepcopy(values)
    return merged


def snapshot_name(env_name: str, resource_version: str, checksum: str) -> str:
    return clean_name(f"{env_name}-{resource_version}-{checksum[:8]}")


class ReleaseResolver:
    """Resolves, validates and activates releases."""

    def __init__(
        self,
        settings: Settings,
        orchestrator: Orchestrator,
        prompter: Prompter,
        reconciler: Reconciler,
        platforms: PlatformResolver | None = None,
        app: App | None = None,
    ):
        self.settings = settings
        self.orchestrator = orchestrator
        self.prompter = prompter
        self.reconciler = reconciler
        self.platforms = platforms or PlatformResolver(settings, orchestrator, prompter)
        self.app = app

    # ── Finding the deployment ──────────────────────────────────

    def find_deployment(self, platform: TargetPlatform, identifier: str) -> DeploymentDescriptor:
        """Resolve *identifier* to exactly one deployment.

        Raises:
            NoMatch: Nothing matched by name or any index label.
            AmbiguousMatch: Several matched and no valid choice was made.
        """
        if is_valid_name(identifier):
            try:
                obj = self.orchestrator.get(ResourceKind.APP_DEPLOYMENT, identifier, platform.namespace)
                return DeploymentDescriptor.from_resource(obj)
            except ResourceNotFound:
                logger.debug("No deployment named '%s', searching labels", identifier)

        for label, matcher in INDEX_KEYS:
            value = matcher(identifier)
            if not value:
                continue
            selector = {label: value}
            if self.app is not None:
                selector[LABEL_APP_NAME] = self.app.name

            matches = self.orchestrator.list(ResourceKind.APP_DEPLOYMENT, None, selector)
            if len(matches) == 1:
                return DeploymentDescriptor.from_resource(matches[0])
            if len(matches) > 1:
                logger.info("Found %d deployments matching '%s'", len(matches), identifier)
                descriptors = [DeploymentDescriptor.from_resource(m) for m in matches]
                index = self.prompter.prompt_choice(
                    "Select the deployment to release:",
                    [f"{d.namespace}/{d.name}" for d in descriptors],
                )
                return descriptors[index]

        raise NoMatch(f"No deployment found matching '{identifier}'")

    # ── Environment data ────────────────────────────────────────

    def virtual_env(self, platform: TargetPlatform, name: str) -> dict[str, Any]:
        try:
            return self.orchestrator.get(ResourceKind.VIRTUAL_ENV, name, platform.namespace)
        except ResourceNotFound as e:
            raise ConfigError(f"Virtual environment '{name}' not found in {platform}") from e

    def environment_data(self, venv: dict[str, Any]) -> dict[str, Any]:
        """The parent environment's data with the virtual environment's layered on top."""
        parent = (venv.get("spec") or {}).get("environment", "")
        base: dict[str, Any] = {}
        if parent:
            env = self.orchestrator.get(ResourceKind.ENVIRONMENT, parent)
            base = env.get("data") or {}
        return merge_environment_data(base, venv.get("data") or {})

    def existing_snapshot(self, platform: TargetPlatform, name: str, env_name: str) -> EnvironmentSnapshot:
        try:
            obj = self.orchestrator.get(ResourceKind.VIRTUAL_ENV_SNAPSHOT, name, platform.namespace)
        except ResourceNotFound as e:
            raise ConfigError(f"Snapshot '{name}' not found in {platform}") from e
        snap = EnvironmentSnapshot.from_resource(obj)
        if snap.source_name != env_name:
            raise ConfigError(f"Snapshot '{name}' belongs to '{snap.source_name}', not '{env_name}'")
        return snap

    def snapshot(
        self,
        platform: TargetPlatform,
        venv: dict[str, Any],
        data: dict[str, Any],
        *,
        dry_run: bool = False,
    ) -> EnvironmentSnapshot:
        """Snapshot *data*, reusing an existing snapshot of identical content."""
        env_name = venv["metadata"]["name"]
        resource_version = venv["metadata"].get("resourceVersion", "")
        checksum = data_checksum(data)

        candidates = self.orchestrator.list(
            ResourceKind.VIRTUAL_ENV_SNAPSHOT,
            platform.namespace,
            {LABEL_VIRTUAL_ENV: env_name, LABEL_SOURCE_RESOURCE_VERSION: resource_version},
        )
        for obj in candidates:
            snap = EnvironmentSnapshot.from_resource(obj)
            if (
                snap.source_name == env_name
                and snap.source_resource_version == resource_version
                and snap.data_checksum == checksum
            ):
                logger.info("Reusing snapshot '%s'", snap.name)
                return snap

        name = snapshot_name(env_name, resource_version, checksum)
        obj = snapshot_resource(
            name,
            platform.namespace,
            source_name=env_name,
            source_resource_version=resource_version,
            data_checksum=checksum,
            data=data,
        )
        try:
            created = self.orchestrator.create(obj, dry_run=dry_run)
            logger.info("Created snapshot '%s'", name)
        except ApplyConflict:
            # Same name means same source and checksum; someone beat us to it
            created = self.orchestrator.get(ResourceKind.VIRTUAL_ENV_SNAPSHOT, name, platform.namespace)
        return EnvironmentSnapshot.from_resource(created)

    # ── Validation ──────────────────────────────────────────────

    def _adapter_lookup(self, namespace: str):
        def lookup(name: str, adapter_type: str) -> dict[str, Any] | None:
            if adapter_type != ResourceKind.HTTP_ADAPTER.kind:
                return None
            try:
                return self.orchestrator.get(ResourceKind.HTTP_ADAPTER, name, namespace)
            except ResourceNotFound:
                return None

        return lookup

    def check(self, deployment: DeploymentDescriptor, data: dict[str, Any], namespace: str) -> None:
        """Raise ``ValidationProblems`` listing every problem found."""
        problems = validate(deployment, data, self._adapter_lookup(namespace))
        if problems:
            raise ValidationProblems(
                f"{len(problems)} problem(s) would prevent release activation",
                problems=problems,
            )

    def confirm_problems(self, error: ValidationProblems) -> None:
        logger.warning("%s:", error.message)
        for problem in error.problems:
            logger.warning("  - %s", problem)
            for cause in problem.causes:
                logger.warning("      %s %s %s", cause.kind, cause.name, cause.path)
        if not self.prompter.prompt_yes_no(
            "Problems that would prevent release activation exist, continue?", False
        ):
            raise ReleaseAborted("Release aborted", problems=error.problems)

    # ── Binding ─────────────────────────────────────────────────

    def bind(
        self,
        venv: dict[str, Any],
        binding: ReleaseBinding,
        *,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """Write *binding* onto *venv*, merging with concurrent edits.

        Raises:
            ApplyConflict: A concurrent edit touched the same fields, or
                the write kept losing races.
        """
        observed = venv
        desired = copy.deepcopy(venv)
        desired.setdefault("spec", {})["release"] = release_spec(
            binding.deployment_name, binding.deployment_version, binding.snapshot_name
        )

        attempt = 1
        while True:
            try:
                return self.orchestrator.replace(desired, dry_run=dry_run)
            except ApplyConflict:
                if attempt >= MAX_BIND_ATTEMPTS:
                    raise
            namespace = observed["metadata"].get("namespace", "")
            live = self.orchestrator.get(ResourceKind.VIRTUAL_ENV, observed["metadata"]["name"], namespace)
            logger.info("Virtual environment changed concurrently, merging (attempt %d)", attempt)
            desired = three_way_merge(observed, desired, live)
            observed = live
            attempt += 1

    # ── Release ─────────────────────────────────────────────────

    def release(self, identifier: str, opts: ReleaseOptions) -> ReleaseBinding:
        """Resolve *identifier* and activate it in ``opts.virtual_env``."""
        platform = self.platforms.resolve()
        deployment = self.find_deployment(platform, identifier)
        logger.info("Releasing deployment '%s' to '%s'", deployment.name, opts.virtual_env)

        venv = self.virtual_env(platform, opts.virtual_env)
        if opts.snapshot:
            pinned = self.existing_snapshot(platform, opts.snapshot, opts.virtual_env)
            data = pinned.data
        else:
            data = self.environment_data(venv)

        try:
            self.check(deployment, data, platform.namespace)
        except ValidationProblems as e:
            self.confirm_problems(e)

        snap_name = opts.snapshot
        if not snap_name and opts.create_snapshot:
            snap_name = self.snapshot(platform, venv, data, dry_run=opts.dry_run).name

        binding = ReleaseBinding(
            environment=opts.virtual_env,
            deployment_name=deployment.name,
            deployment_version=deployment.version,
            snapshot_name=snap_name,
        )
        self.bind(venv, binding, dry_run=opts.dry_run)

        if not opts.dry_run:
            self.reconciler.wait_ready(
                platform,
                {name: spec.commit for name, spec in deployment.components.items()},
                opts.wait_timeout,
            )
        return binding
