"""
Domain models — Pydantic types for apps, deployments and releases.

All models are re-exported here for convenient access:

    from kubeship.core.models import App, DeploymentDescriptor, TargetPlatform
"""

from kubeship.core.models.app import App
from kubeship.core.models.config import (
    Flags,
    KindConfig,
    PlatformPreference,
    RegistryConfig,
    Settings,
    UserConfig,
)
from kubeship.core.models.deployment import (
    ComponentIdentity,
    ComponentSpec,
    DeploymentDescriptor,
    ImageRef,
)
from kubeship.core.models.release import (
    EnvironmentSnapshot,
    Problem,
    ProblemSource,
    ReleaseBinding,
    TargetPlatform,
)
from kubeship.core.models.resources import ResourceKind

__all__ = [
    # app.py
    "App",
    # deployment.py
    "ComponentIdentity",
    "ComponentSpec",
    "DeploymentDescriptor",
    # release.py
    "EnvironmentSnapshot",
    # config.py
    "Flags",
    "ImageRef",
    "KindConfig",
    "PlatformPreference",
    "Problem",
    "ProblemSource",
    "RegistryConfig",
    "ReleaseBinding",
    # resources.py
    "ResourceKind",
    "Settings",
    "TargetPlatform",
    "UserConfig",
]
