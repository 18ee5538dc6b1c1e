"""
Adapter base — the contracts between the core and external tools.

The core services only talk to git, the container engine, the cluster
and the operator through these interfaces, never directly. Concrete
adapters drive the real CLIs; ``kubeship.adapters.mock`` provides
in-memory doubles.

Unlike a fire-and-forget action runner, these adapters raise typed
``KubeshipError`` subclasses: every failure here is fatal to the
invocation and must reach the operator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from kubeship.core.models.resources import ResourceKind


# ═══════════════════════════════════════════════════════════════════
#  Version control
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Changeset:
    """One commit as seen by ``log``."""

    hash: str
    short_hash: str
    committed_at: datetime
    subject: str = ""


@dataclass(frozen=True)
class HeadRef:
    """What HEAD points at: a branch, a tag, both, or neither (detached)."""

    branch: str = ""
    tag: str = ""


class VersionControl(ABC):
    """Read (and minimally write) the repository the app lives in."""

    @property
    @abstractmethod
    def root(self) -> Path:
        """Repository root directory."""

    @abstractmethod
    def is_clean(self) -> bool:
        """Whether the working tree has no uncommitted modifications."""

    @abstractmethod
    def head_ref(self) -> HeadRef:
        """Branch and/or tag HEAD points at."""

    @abstractmethod
    def head_commit(self) -> Changeset:
        """The commit HEAD points at."""

    @abstractmethod
    def log(self, path_prefix: str, limit: int | None = None) -> Sequence[Changeset]:
        """Commits touching *path_prefix*, most recent first."""

    @abstractmethod
    def root_commit(self) -> str:
        """Hash of the first commit of the repository."""

    @abstractmethod
    def remote_url(self) -> str:
        """URL of the ``origin`` remote, or ``""``."""

    @abstractmethod
    def create_tag(self, name: str) -> str:
        """Tag HEAD; returns the full ref name."""


# ═══════════════════════════════════════════════════════════════════
#  Container engine
# ═══════════════════════════════════════════════════════════════════


@dataclass
class BuildRequest:
    """Inputs for one image build."""

    context: Path                       # tar archive of the build context
    dockerfile: str                     # path of the recipe inside the archive
    tags: list[str]
    build_args: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    no_cache: bool = False


class ContainerEngine(ABC):
    """Build, distribute and briefly run container images."""

    @abstractmethod
    def image_exists_local(self, ref: str) -> bool:
        """Whether *ref* is present in the local image cache."""

    @abstractmethod
    def manifest_exists(self, ref: str) -> bool:
        """Whether the remote registry has a manifest for *ref*."""

    @abstractmethod
    def pull(self, ref: str) -> Iterator[str]:
        """Pull *ref*, yielding output lines."""

    @abstractmethod
    def build(self, request: BuildRequest) -> Iterator[str]:
        """Build an image, yielding output lines as they arrive."""

    @abstractmethod
    def push(self, ref: str) -> Iterator[str]:
        """Push *ref*, yielding output lines."""

    @abstractmethod
    def login(self, registry: str, username: str, token: str) -> None:
        """Authenticate against *registry*."""

    @abstractmethod
    def run_export(self, ref: str, args: Sequence[str], timeout: float) -> str:
        """Run *ref* with *args* to completion and return its stdout.

        The container is removed afterwards on every path.
        """

    @abstractmethod
    def sideload(self, ref: str, cluster: str) -> str:
        """Load a local image into a local test cluster."""


# ═══════════════════════════════════════════════════════════════════
#  Orchestrator
# ═══════════════════════════════════════════════════════════════════


class Orchestrator(ABC):
    """CRUD access to cluster resources.

    ``get`` raises ``ResourceNotFound`` for missing objects; writes raise
    ``ApplyConflict`` when the resourceVersion they carry is stale.
    """

    @abstractmethod
    def get(self, kind: ResourceKind, name: str, namespace: str = "") -> dict[str, Any]:
        """Fetch one object."""

    @abstractmethod
    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """List objects. ``namespace=None`` lists across all namespaces.

        *timeout* bounds this one call in place of the adapter's own deadline.
        """

    @abstractmethod
    def create(self, obj: dict[str, Any], *, dry_run: bool = False) -> dict[str, Any]:
        """Create *obj*; returns the stored object."""

    @abstractmethod
    def replace(self, obj: dict[str, Any], *, dry_run: bool = False) -> dict[str, Any]:
        """Replace *obj* (guarded by its resourceVersion); returns the stored object."""


# ═══════════════════════════════════════════════════════════════════
#  Operator interaction
# ═══════════════════════════════════════════════════════════════════


class Prompter(ABC):
    """Asks the operator at the few decision points that need a human."""

    @abstractmethod
    def prompt_yes_no(self, question: str, default: bool) -> bool:
        """Yes/no confirmation."""

    @abstractmethod
    def prompt_choice(self, question: str, options: Sequence[str]) -> int:
        """Show *options* as a 1-based list; return the chosen 0-based index.

        Raises:
            AmbiguousMatch: If no valid selection is made.
        """
