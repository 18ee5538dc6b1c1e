"""
Configuration models — the user config file and per-invocation settings.

``UserConfig`` is persisted at ``~/.config/kubeship/config.yaml``.
``Settings`` is built once by the CLI from flags, environment and the
user config, then passed explicitly into every component constructor.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

# Registry addresses that only exist in the local image cache.
LOCAL_REGISTRIES = frozenset({"localhost", "kind.local"})

DEFAULT_REGISTRY = "localhost"


class RegistryConfig(BaseModel):
    """Container registry coordinates and credentials."""

    model_config = ConfigDict(populate_by_name=True)

    address: str = ""
    username: str = ""
    token: str = ""

    @property
    def is_local(self) -> bool:
        return (self.address or DEFAULT_REGISTRY) in LOCAL_REGISTRIES


class PlatformPreference(BaseModel):
    """Remembered platform selection."""

    namespace: str = ""
    name: str = ""


class KindConfig(BaseModel):
    """Local kind test cluster to side-load images into."""

    model_config = ConfigDict(populate_by_name=True)

    cluster_name: str = Field(default="", alias="clusterName")
    always_load: bool = Field(default=False, alias="alwaysLoad")


class UserConfig(BaseModel):
    """Persisted user configuration."""

    model_config = ConfigDict(populate_by_name=True)

    container_registry: RegistryConfig = Field(
        default_factory=RegistryConfig, alias="containerRegistry"
    )
    platform: PlatformPreference = Field(default_factory=PlatformPreference)
    kind: KindConfig = Field(default_factory=KindConfig)


class Flags(BaseModel):
    """Per-invocation switches collected from the command line."""

    dry_run: bool = False
    wait_seconds: float = 0

    force_build: bool = False
    no_cache: bool = False
    push_image: bool = False
    kind: str = ""

    deployment_name: str = ""
    version: str = ""
    create_tag: bool = False
    skip_deploy: bool = False

    namespace: str = ""
    platform: str = ""

    virtual_env: str = ""
    snapshot: str = ""
    create_snapshot: bool = False


class Settings(BaseModel):
    """Everything a component needs to know about this invocation."""

    model_config = ConfigDict(frozen=True)

    repo_path: Path
    app_path: Path
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    platform: PlatformPreference = Field(default_factory=PlatformPreference)
    kind: KindConfig = Field(default_factory=KindConfig)
    flags: Flags = Field(default_factory=Flags)
    user_config_path: Path | None = None

    @property
    def registry_address(self) -> str:
        return self.registry.address or DEFAULT_REGISTRY

    @property
    def registry_is_local(self) -> bool:
        return self.registry.is_local

    @property
    def sideload_target(self) -> str:
        """kind cluster to load images into, or ``""`` for none."""
        if self.flags.kind:
            return self.flags.kind
        if self.kind.always_load:
            return self.kind.cluster_name
        return ""

    @property
    def components_dir(self) -> Path:
        return self.app_path / "components"

    def component_dir(self, dir_name: str) -> Path:
        return self.components_dir / dir_name

    def repo_subpath(self, path: Path) -> str:
        """*path* relative to the repository root, POSIX style."""
        return path.resolve().relative_to(self.repo_path.resolve()).as_posix()
