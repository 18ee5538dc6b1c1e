"""
Deployment models — identities, image references and the descriptor.

A ``DeploymentDescriptor`` is assembled per invocation from Git state and
the metadata each component image exports, then applied to the cluster
as an ``AppDeployment`` resource. Once applied the cluster owns it; the
tool only reads it back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kubeship.core.models.resources import (
    LABEL_APP_BRANCH,
    LABEL_APP_COMMIT,
    LABEL_APP_COMMIT_SHORT,
    LABEL_APP_NAME,
    LABEL_APP_TAG,
    LABEL_APP_VERSION,
    ResourceKind,
    label_value,
    new_resource,
)

SHORT_HASH_LENGTH = 7


class ComponentIdentity(BaseModel):
    """Content identity of one component at one repository state."""

    model_config = ConfigDict(frozen=True)

    component_name: str
    scope_path: str
    content_hash: str

    @property
    def short_hash(self) -> str:
        return self.content_hash[:SHORT_HASH_LENGTH]


class ImageRef(BaseModel):
    """Deterministic image reference for a component identity."""

    model_config = ConfigDict(frozen=True)

    registry_address: str
    app_name: str
    component_name: str
    content_hash: str

    @property
    def repository(self) -> str:
        return f"{self.registry_address}/{self.app_name}/{self.component_name}"

    @property
    def tag(self) -> str:
        return f"{self.repository}:{self.content_hash}"

    def __str__(self) -> str:
        return self.tag


# ── Component definitions (exported by component images) ────────


class EnvVarDefinition(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""
    required: bool = False


class Dependency(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = ""


class RouteSpec(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: int = 0
    rule: str = ""
    priority: int = 0
    env_var_schema: dict[str, EnvVarDefinition] = Field(default_factory=dict, alias="envVarSchema")


class ComponentSpec(BaseModel):
    """A component in a deployment: its identity plus exported definition.

    ``commit`` is the content identity and is never replaced by the
    metadata a component image exports about itself.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    commit: str
    type: str = ""
    routes: list[RouteSpec] = Field(default_factory=list)
    default_handler: bool = Field(default=False, alias="defaultHandler")
    env_var_schema: dict[str, EnvVarDefinition] = Field(default_factory=dict, alias="envVarSchema")
    dependencies: dict[str, Dependency] = Field(default_factory=dict)

    def merge_definition(self, definition: dict[str, Any]) -> ComponentSpec:
        """Return a copy enriched with *definition*, keeping ``commit``."""
        merged = self.model_dump(by_alias=True, exclude_none=True)
        for key, value in definition.items():
            if key in ("commit", "hash"):
                continue
            merged[key] = value
        merged["commit"] = self.commit
        return ComponentSpec.model_validate(merged)


# ── Descriptor ──────────────────────────────────────────────────


class DeploymentDescriptor(BaseModel):
    """Versioned record of an app's components, applied as an AppDeployment."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    namespace: str = ""
    app_name: str
    version: str = ""
    commit: str = ""
    commit_time: datetime | None = None
    branch: str = ""
    tag: str = ""
    repo_url: str = ""
    container_registry: str = ""
    image_pull_secret_name: str = ""
    title: str = ""
    description: str = ""
    components: dict[str, ComponentSpec] = Field(default_factory=dict)

    # Read back from the cluster, never sent.
    resource_version: str = ""

    def index_labels(self) -> dict[str, str]:
        """Labels the release resolver searches by."""
        labels = {LABEL_APP_NAME: self.app_name}
        if self.commit:
            labels[LABEL_APP_COMMIT] = self.commit
            labels[LABEL_APP_COMMIT_SHORT] = self.commit[:SHORT_HASH_LENGTH]
        for key, value in (
            (LABEL_APP_VERSION, self.version),
            (LABEL_APP_TAG, self.tag),
            (LABEL_APP_BRANCH, self.branch),
        ):
            if value:
                labels[key] = label_value(value)
        return labels

    def to_resource(self) -> dict[str, Any]:
        """Render as an ``AppDeployment`` resource dict."""
        resource = new_resource(
            ResourceKind.APP_DEPLOYMENT,
            self.name,
            self.namespace,
            labels=self.index_labels(),
        )
        spec: dict[str, Any] = {
            "appName": self.app_name,
            "commit": self.commit,
            "commitTime": self.commit_time.isoformat() if self.commit_time else None,
            "repoURL": self.repo_url,
            "branch": self.branch,
            "tag": self.tag,
            "containerRegistry": self.container_registry,
            "components": {
                name: comp.model_dump(by_alias=True, exclude_none=True)
                for name, comp in sorted(self.components.items())
            },
        }
        if self.version:
            spec["version"] = self.version
        if self.image_pull_secret_name:
            spec["imagePullSecretName"] = self.image_pull_secret_name
        resource["spec"] = {k: v for k, v in spec.items() if v not in (None, "")}
        details = {k: v for k, v in (("title", self.title), ("description", self.description)) if v}
        if details:
            resource["details"] = details
        return resource

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> DeploymentDescriptor:
        """Parse an ``AppDeployment`` resource read from the cluster."""
        meta = obj.get("metadata", {})
        spec = obj.get("spec", {}) or {}
        details = obj.get("details", {}) or {}
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            resource_version=meta.get("resourceVersion", ""),
            app_name=spec.get("appName", ""),
            version=spec.get("version", ""),
            commit=spec.get("commit", ""),
            commit_time=spec.get("commitTime"),
            branch=spec.get("branch", ""),
            tag=spec.get("tag", ""),
            repo_url=spec.get("repoURL", ""),
            container_registry=spec.get("containerRegistry", ""),
            image_pull_secret_name=spec.get("imagePullSecretName", ""),
            title=details.get("title", ""),
            description=details.get("description", ""),
            components={
                name: ComponentSpec.model_validate(comp)
                for name, comp in (spec.get("components") or {}).items()
            },
        )
