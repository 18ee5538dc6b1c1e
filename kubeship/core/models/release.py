"""
Release models — target platform, environment snapshots, bindings, problems.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TargetPlatform(BaseModel):
    """The platform instance deployments are applied to."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class EnvironmentSnapshot(BaseModel):
    """Immutable, content-addressed copy of environment data."""

    model_config = ConfigDict(frozen=True)

    name: str
    source_name: str
    source_resource_version: str
    data_checksum: str
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> EnvironmentSnapshot:
        source = (obj.get("spec") or {}).get("source") or {}
        return cls(
            name=obj.get("metadata", {}).get("name", ""),
            source_name=source.get("name", ""),
            source_resource_version=source.get("resourceVersion", ""),
            data_checksum=source.get("dataChecksum", ""),
            data=obj.get("data") or {},
        )


class ReleaseBinding(BaseModel):
    """Which deployment (and optional snapshot) a virtual environment runs."""

    environment: str = ""
    deployment_name: str
    deployment_version: str = ""
    snapshot_name: str = ""


class ProblemSource(BaseModel):
    """Where a validation problem comes from."""

    kind: str
    name: str
    path: str = ""
    value: str = ""


class Problem(BaseModel):
    """One reason a deployment cannot be activated as-is."""

    type: str
    message: str
    causes: list[ProblemSource] = Field(default_factory=list)

    def __str__(self) -> str:
        return f"[{self.type}] {self.message}"
