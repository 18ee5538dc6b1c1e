"""
Reconciler — idempotent apply of a deployment descriptor, then readiness.

Writes are read-before-write upserts: an existing object's identity and
``resourceVersion`` are carried into the replacement, so the API server
rejects the write if someone else changed the object in between. The
readiness wait polls pod status at a fixed interval under a single
``Deadline``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from kubeship.adapters.base import Orchestrator
from kubeship.core.deadline import Deadline
from kubeship.core.errors import Cancelled, ReadinessTimeout, ResourceNotFound
from kubeship.core.models.config import Settings
from kubeship.core.models.deployment import DeploymentDescriptor
from kubeship.core.models.release import TargetPlatform
from kubeship.core.models.resources import (
    LABEL_COMPONENT,
    LABEL_COMPONENT_COMMIT,
    LABEL_PLATFORM,
    ResourceKind,
    object_key,
    pull_secret_resource,
)

logger = logging.getLogger(__name__)

POLL_INTERVAL = 3.0  # seconds

# Shared platform workloads that must be up before any component.
PLATFORM_WORKLOADS = ("nats", "broker")


@dataclass(frozen=True)
class ReconcileOptions:
    dry_run: bool = False
    wait_timeout: float = 0


def pull_secret_name(app_name: str) -> str:
    return f"{app_name}-image-pull-secret"


def pods_ready(pods: list[dict[str, Any]]) -> bool:
    """True when there is at least one pod and every container reports ready."""
    if not pods:
        return False
    for pod in pods:
        statuses = (pod.get("status") or {}).get("containerStatuses") or []
        if not statuses or not all(s.get("ready") for s in statuses):
            return False
    return True


class Reconciler:
    """Applies descriptors and waits for their workloads."""

    def __init__(self, settings: Settings, orchestrator: Orchestrator):
        self.settings = settings
        self.orchestrator = orchestrator

    # ── Apply ───────────────────────────────────────────────────

    def upsert(self, obj: dict[str, Any], *, dry_run: bool = False) -> dict[str, Any]:
        """Create *obj*, or replace the live object keeping its identity fields."""
        kind = ResourceKind.of(obj)
        namespace, name = object_key(obj)
        try:
            live = self.orchestrator.get(kind, name, namespace)
        except ResourceNotFound:
            logger.debug("%s %s not found, creating", kind.kind, name)
            return self.orchestrator.create(obj, dry_run=dry_run)

        live_meta = live.get("metadata", {})
        desired = dict(obj)
        desired["metadata"] = dict(obj.get("metadata", {}))
        for field in ("resourceVersion", "uid"):
            if live_meta.get(field):
                desired["metadata"][field] = live_meta[field]
        return self.orchestrator.replace(desired, dry_run=dry_run)

    def provision_pull_secret(
        self,
        descriptor: DeploymentDescriptor,
        platform: TargetPlatform,
        *,
        dry_run: bool = False,
    ) -> None:
        """Create the image pull secret when a registry token is configured."""
        registry = self.settings.registry
        if not registry.token:
            return
        name = pull_secret_name(descriptor.app_name)
        secret = pull_secret_resource(
            name,
            platform.namespace,
            address=self.settings.registry_address,
            username=registry.username,
            token=registry.token,
        )
        self.upsert(secret, dry_run=dry_run)
        descriptor.image_pull_secret_name = name
        logger.info("Image pull secret '%s' applied", name)

    # ── Readiness ───────────────────────────────────────────────

    def workload_ready(
        self,
        platform: TargetPlatform,
        component: str,
        commit: str = "",
        timeout: float | None = None,
    ) -> bool:
        labels = {LABEL_COMPONENT: component, LABEL_PLATFORM: platform.name}
        if commit:
            labels[LABEL_COMPONENT_COMMIT] = commit
        pods = self.orchestrator.list(ResourceKind.POD, platform.namespace, labels, timeout=timeout)
        return pods_ready(pods)

    def wait_workload(self, platform: TargetPlatform, component: str, commit: str, deadline: Deadline) -> None:
        """Poll until *component* is ready; ``ReadinessTimeout`` at the deadline.

        Each pod listing is bounded by what is left of *deadline*, not by the
        invocation's own budget.
        """
        logger.debug("Waiting for '%s' (commit '%s') to be ready", component, commit)
        while True:
            remaining = deadline.remaining()
            if remaining <= 0:
                raise self._not_ready(component, deadline)
            try:
                if self.workload_ready(platform, component, commit, timeout=remaining):
                    break
            except Cancelled as e:
                if not deadline.expired:
                    raise
                raise self._not_ready(component, deadline) from e
            remaining = deadline.remaining()
            if remaining <= 0:
                raise self._not_ready(component, deadline)
            time.sleep(min(POLL_INTERVAL, remaining))
        logger.info("Component '%s' is ready", component)

    @staticmethod
    def _not_ready(component: str, deadline: Deadline) -> ReadinessTimeout:
        return ReadinessTimeout(f"Component '{component}' was not ready within {deadline.seconds:.0f}s")

    def wait_ready(
        self,
        platform: TargetPlatform,
        components: Mapping[str, str],
        timeout: float,
    ) -> None:
        """Wait for the platform workloads, then each component's commit.

        Returns immediately when *timeout* is not positive.
        """
        if timeout <= 0:
            return
        deadline = Deadline(timeout)
        logger.info("Waiting for platform '%s' to be ready", platform)
        for workload in PLATFORM_WORKLOADS:
            self.wait_workload(platform, workload, "", deadline)
        for name, commit in sorted(components.items()):
            self.wait_workload(platform, name, commit, deadline)

    # ── Reconcile ───────────────────────────────────────────────

    def reconcile(
        self,
        descriptor: DeploymentDescriptor,
        platform: TargetPlatform,
        opts: ReconcileOptions,
    ) -> DeploymentDescriptor:
        """Apply *descriptor* to *platform* and wait for it.

        Returns the descriptor as stored by the cluster (as validated by
        the server in a dry run).
        """
        descriptor = descriptor.model_copy(deep=True)
        descriptor.namespace = platform.namespace

        self.provision_pull_secret(descriptor, platform, dry_run=opts.dry_run)
        applied = self.upsert(descriptor.to_resource(), dry_run=opts.dry_run)
        logger.info(
            "AppDeployment '%s' applied to %s%s",
            descriptor.name, platform, " (dry run)" if opts.dry_run else "",
        )

        if opts.dry_run:
            return DeploymentDescriptor.from_resource(applied)

        stored = self.orchestrator.get(ResourceKind.APP_DEPLOYMENT, descriptor.name, platform.namespace)
        self.wait_ready(
            platform,
            {name: spec.commit for name, spec in descriptor.components.items()},
            opts.wait_timeout,
        )
        return DeploymentDescriptor.from_resource(stored)
