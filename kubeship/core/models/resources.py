"""
Orchestrator resources — the closed set of kinds this tool reads and writes.

Every object sent to or read from the cluster is a plain JSON-compatible
dict (what ``kubectl -o json`` produces). ``ResourceKind`` enumerates the
kinds we handle, and each kind we *write* has its own typed constructor
here. Nothing builds resources from a free-form kind string.
"""

from __future__ import annotations

import base64
import json
import re
from enum import Enum
from typing import Any

PLATFORM_GROUP = "kubefox.xigxog.io"
PLATFORM_API_VERSION = f"{PLATFORM_GROUP}/v1alpha1"

# ── Labels ──────────────────────────────────────────────────────

LABEL_APP_NAME = "app.kubernetes.io/name"
LABEL_COMPONENT = "app.kubernetes.io/component"
LABEL_PLATFORM = f"{PLATFORM_GROUP}/platform"
LABEL_COMPONENT_COMMIT = f"{PLATFORM_GROUP}/component-commit"
LABEL_APP_COMMIT = f"{PLATFORM_GROUP}/app-commit"
LABEL_APP_COMMIT_SHORT = f"{PLATFORM_GROUP}/app-commit-short"
LABEL_APP_VERSION = f"{PLATFORM_GROUP}/app-version"
LABEL_APP_TAG = f"{PLATFORM_GROUP}/app-tag"
LABEL_APP_BRANCH = f"{PLATFORM_GROUP}/app-branch"
LABEL_VIRTUAL_ENV = f"{PLATFORM_GROUP}/virtual-env"
LABEL_SOURCE_RESOURCE_VERSION = f"{PLATFORM_GROUP}/source-resource-version"

# OCI image labels written at build time.
LABEL_OCI_COMPONENT = f"{PLATFORM_GROUP}/component"
LABEL_OCI_CREATED = "org.opencontainers.image.created"
LABEL_OCI_REVISION = "org.opencontainers.image.revision"
LABEL_OCI_SOURCE = "org.opencontainers.image.source"

_LABEL_INVALID = re.compile(r"[^A-Za-z0-9_.-]+")


def label_value(value: str) -> str:
    """Coerce *value* into a valid label value (``feature/x`` → ``feature-x``)."""
    cleaned = _LABEL_INVALID.sub("-", value)[:63]
    return cleaned.strip("-_.")


class ResourceKind(Enum):
    """Resource kinds handled by the tool: (kind, apiVersion, plural)."""

    APP_DEPLOYMENT = ("AppDeployment", PLATFORM_API_VERSION, "appdeployments")
    PLATFORM = ("Platform", PLATFORM_API_VERSION, "platforms")
    VIRTUAL_ENV = ("VirtualEnv", PLATFORM_API_VERSION, "virtualenvs")
    ENVIRONMENT = ("Environment", PLATFORM_API_VERSION, "environments")
    VIRTUAL_ENV_SNAPSHOT = ("VirtualEnvSnapshot", PLATFORM_API_VERSION, "virtualenvsnapshots")
    HTTP_ADAPTER = ("HTTPAdapter", PLATFORM_API_VERSION, "httpadapters")
    SECRET = ("Secret", "v1", "secrets")
    POD = ("Pod", "v1", "pods")
    NAMESPACE = ("Namespace", "v1", "namespaces")

    def __init__(self, kind: str, api_version: str, plural: str):
        self.kind = kind
        self.api_version = api_version
        self.plural = plural

    @property
    def namespaced(self) -> bool:
        return self is not ResourceKind.NAMESPACE and self is not ResourceKind.ENVIRONMENT

    @property
    def resource(self) -> str:
        """Fully-qualified resource name as kubectl expects it."""
        if "/" in self.api_version:
            group = self.api_version.split("/", 1)[0]
            return f"{self.plural}.{group}"
        return self.plural

    @classmethod
    def of(cls, obj: dict) -> ResourceKind:
        """Look up the kind of a resource dict."""
        for member in cls:
            if member.kind == obj.get("kind") and member.api_version == obj.get("apiVersion"):
                return member
        raise ValueError(f"Unsupported resource kind: {obj.get('apiVersion')}/{obj.get('kind')}")


# ── Typed constructors ──────────────────────────────────────────


def new_resource(
    kind: ResourceKind,
    name: str,
    namespace: str = "",
    *,
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Skeleton object of *kind* with identity metadata filled in."""
    metadata: dict[str, Any] = {"name": name}
    if namespace and kind.namespaced:
        metadata["namespace"] = namespace
    if labels:
        metadata["labels"] = dict(labels)
    return {"apiVersion": kind.api_version, "kind": kind.kind, "metadata": metadata}


def pull_secret_resource(
    name: str,
    namespace: str,
    *,
    address: str,
    username: str,
    token: str,
) -> dict[str, Any]:
    """``kubernetes.io/dockerconfigjson`` Secret granting pull access to *address*."""
    auth = base64.b64encode(f"{username}:{token}".encode()).decode()
    docker_config = {
        "auths": {
            address: {"username": username, "password": token, "auth": auth},
        },
    }
    secret = new_resource(ResourceKind.SECRET, name, namespace)
    secret["type"] = "kubernetes.io/dockerconfigjson"
    secret["stringData"] = {".dockerconfigjson": json.dumps(docker_config)}
    return secret


def snapshot_resource(
    name: str,
    namespace: str,
    *,
    source_name: str,
    source_resource_version: str,
    data_checksum: str,
    data: dict[str, Any],
) -> dict[str, Any]:
    """Immutable VirtualEnvSnapshot of *source_name* at *source_resource_version*."""
    snap = new_resource(
        ResourceKind.VIRTUAL_ENV_SNAPSHOT,
        name,
        namespace,
        labels={
            LABEL_VIRTUAL_ENV: source_name,
            LABEL_SOURCE_RESOURCE_VERSION: source_resource_version,
        },
    )
    snap["spec"] = {
        "source": {
            "kind": ResourceKind.VIRTUAL_ENV.kind,
            "name": source_name,
            "resourceVersion": source_resource_version,
            "dataChecksum": data_checksum,
        },
    }
    snap["data"] = data
    return snap


def release_spec(
    deployment_name: str,
    deployment_version: str,
    snapshot_name: str,
) -> dict[str, Any]:
    """The ``spec.release`` block written onto a VirtualEnv."""
    release: dict[str, Any] = {
        "appDeployment": {"name": deployment_name, "version": deployment_version},
    }
    if snapshot_name:
        release["virtualEnvSnapshot"] = snapshot_name
    return release


def object_key(obj: dict) -> tuple[str, str]:
    """``(namespace, name)`` of a resource dict."""
    meta = obj.get("metadata", {})
    return meta.get("namespace", ""), meta.get("name", "")
