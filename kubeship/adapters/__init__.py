"""Adapters — bindings to git, docker, kind, kubectl and the terminal.

Public re-exports for convenient access.
"""

from kubeship.adapters.base import (
    BuildRequest,
    Changeset,
    ContainerEngine,
    HeadRef,
    Orchestrator,
    Prompter,
    VersionControl,
)

__all__ = [
    "BuildRequest",
    "Changeset",
    "ContainerEngine",
    "HeadRef",
    "Orchestrator",
    "Prompter",
    "VersionControl",
]
