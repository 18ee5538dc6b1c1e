"""
Mock adapters — in-memory test doubles for every external interface.

Used by the test-suite to drive the core services without git, docker,
kind or a cluster. Each double records its calls in ``call_log`` and
can be configured to fail.
"""

from __future__ import annotations

import copy
import itertools
import uuid
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from kubeship.adapters.base import (
    BuildRequest,
    Changeset,
    ContainerEngine,
    HeadRef,
    Orchestrator,
    Prompter,
    VersionControl,
)
from kubeship.core.errors import (
    AmbiguousMatch,
    ApplyConflict,
    ImageBuildFailed,
    ImageNotFound,
    MetadataExtractionFailed,
    NoHistory,
    OrchestratorError,
    ResourceNotFound,
)
from kubeship.core.models.resources import ResourceKind, object_key


# ═══════════════════════════════════════════════════════════════════
#  Version control
# ═══════════════════════════════════════════════════════════════════


@dataclass
class _MockCommit:
    changeset: Changeset
    paths: tuple[str, ...]


class MockRepository(VersionControl):
    """A repository whose history is a list of commits with touched paths."""

    def __init__(self, root: Path = Path("/repo"), *, clean: bool = True, branch: str = "main", tag: str = ""):
        self._root = root
        self.clean = clean
        self.ref = HeadRef(branch=branch, tag=tag)
        self.remote = ""
        self.commits: list[_MockCommit] = []  # most recent first
        self.tags: list[str] = []
        self.call_log: list[tuple[str, ...]] = []

    def add_commit(self, hash: str, *paths: str, committed_at: datetime | None = None) -> Changeset:
        changeset = Changeset(
            hash=hash,
            short_hash=hash[:7],
            committed_at=committed_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        self.commits.insert(0, _MockCommit(changeset, paths))
        return changeset

    @property
    def root(self) -> Path:
        return self._root

    def is_clean(self) -> bool:
        self.call_log.append(("is_clean",))
        return self.clean

    def head_ref(self) -> HeadRef:
        return self.ref

    def head_commit(self) -> Changeset:
        if not self.commits:
            raise NoHistory("Repository has no commits")
        return self.commits[0].changeset

    def log(self, path_prefix: str, limit: int | None = None) -> Sequence[Changeset]:
        self.call_log.append(("log", path_prefix))
        prefix = path_prefix.rstrip("/")
        matches = [
            c.changeset
            for c in self.commits
            if any(p == prefix or p.startswith(prefix + "/") or not prefix for p in c.paths)
        ]
        return matches[:limit] if limit is not None else matches

    def root_commit(self) -> str:
        return self.commits[-1].changeset.hash if self.commits else ""

    def remote_url(self) -> str:
        return self.remote

    def create_tag(self, name: str) -> str:
        self.call_log.append(("create_tag", name))
        self.tags.append(name)
        return f"refs/tags/{name}"


# ═══════════════════════════════════════════════════════════════════
#  Container engine
# ═══════════════════════════════════════════════════════════════════


class MockContainerEngine(ContainerEngine):
    """An engine with a local image cache and a remote registry as sets."""

    def __init__(self):
        self.local: set[str] = set()
        self.remote: set[str] = set()
        self.build_output: list[str] = ['{"stream": "Step 1/1 : FROM scratch"}']
        self.exports: dict[str, str] = {}
        self.builds: list[BuildRequest] = []
        self.pushes: list[str] = []
        self.pulls: list[str] = []
        self.sideloads: list[tuple[str, str]] = []
        self.logins: list[tuple[str, str]] = []
        self.containers_created = 0
        self.containers_removed = 0
        self.call_log: list[tuple[str, ...]] = []

    def image_exists_local(self, ref: str) -> bool:
        self.call_log.append(("image_exists_local", ref))
        return ref in self.local

    def manifest_exists(self, ref: str) -> bool:
        self.call_log.append(("manifest_exists", ref))
        return ref in self.remote

    def pull(self, ref: str) -> Iterator[str]:
        self.call_log.append(("pull", ref))
        if ref not in self.remote:
            raise ImageNotFound(f"pull {ref}: not found")
        self.pulls.append(ref)
        self.local.add(ref)
        yield f"Pulled {ref}"

    def build(self, request: BuildRequest) -> Iterator[str]:
        self.call_log.append(("build", *request.tags))
        self.builds.append(request)
        yield from self.build_output
        self.local.update(request.tags)

    def push(self, ref: str) -> Iterator[str]:
        self.call_log.append(("push", ref))
        self.pushes.append(ref)
        self.remote.add(ref)
        yield f'{{"status": "Pushed {ref}"}}'

    def login(self, registry: str, username: str, token: str) -> None:
        self.call_log.append(("login", registry))
        self.logins.append((registry, username))

    def run_export(self, ref: str, args: Sequence[str], timeout: float) -> str:
        self.call_log.append(("run_export", ref, *args))
        self.containers_created += 1
        try:
            if ref not in self.exports:
                raise MetadataExtractionFailed(f"Container for '{ref}' produced no output")
            return self.exports[ref]
        finally:
            self.containers_removed += 1

    def sideload(self, ref: str, cluster: str) -> str:
        self.call_log.append(("sideload", ref, cluster))
        self.sideloads.append((ref, cluster))
        return f"Image: {ref} loaded into {cluster}"


class FailingBuildEngine(MockContainerEngine):
    """Engine whose builds exit non-zero after emitting their output."""

    def build(self, request: BuildRequest) -> Iterator[str]:
        self.builds.append(request)
        yield from self.build_output
        raise ImageBuildFailed("docker build exited with code 1")


# ═══════════════════════════════════════════════════════════════════
#  Orchestrator
# ═══════════════════════════════════════════════════════════════════


def _labels_match(obj: dict[str, Any], labels: dict[str, str] | None) -> bool:
    actual = obj.get("metadata", {}).get("labels") or {}
    return all(actual.get(k) == v for k, v in (labels or {}).items())


class MockOrchestrator(Orchestrator):
    """An in-memory API server with resourceVersion bookkeeping.

    ``before_replace`` hooks run once each, ahead of the next ``replace``,
    so tests can inject a concurrent edit.
    """

    def __init__(self):
        self.objects: dict[tuple[ResourceKind, str, str], dict[str, Any]] = {}
        self.call_log: list[tuple[str, str, str]] = []
        self.before_replace: list[Callable[[MockOrchestrator], None]] = []
        self.fail_list: Exception | None = None
        self.list_timeouts: list[float | None] = []
        self._versions = itertools.count(1)

    def _key(self, kind: ResourceKind, name: str, namespace: str) -> tuple[ResourceKind, str, str]:
        return kind, namespace if kind.namespaced else "", name

    def add(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Seed an object directly, bypassing create semantics."""
        kind = ResourceKind.of(obj)
        namespace, name = object_key(obj)
        stored = copy.deepcopy(obj)
        meta = stored.setdefault("metadata", {})
        meta["resourceVersion"] = str(next(self._versions))
        meta.setdefault("uid", uuid.uuid4().hex)
        self.objects[self._key(kind, name, namespace)] = stored
        return copy.deepcopy(stored)

    def mutate(self, kind: ResourceKind, name: str, namespace: str, fn: Callable[[dict], None]) -> None:
        """Edit a stored object in place, bumping its resourceVersion."""
        stored = self.objects[self._key(kind, name, namespace)]
        fn(stored)
        stored["metadata"]["resourceVersion"] = str(next(self._versions))

    def get(self, kind: ResourceKind, name: str, namespace: str = "") -> dict[str, Any]:
        self.call_log.append(("get", kind.kind, name))
        if "/" in name:
            raise OrchestratorError(f"get {kind.kind} {name} failed: resource/name form is not a plain name")
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise ResourceNotFound(f'{kind.plural} "{name}" not found')
        return copy.deepcopy(self.objects[key])

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        self.call_log.append(("list", kind.kind, namespace or "*"))
        self.list_timeouts.append(timeout)
        if self.fail_list is not None:
            raise self.fail_list
        return [
            copy.deepcopy(obj)
            for (k, ns, _), obj in sorted(self.objects.items(), key=lambda kv: (kv[0][1], kv[0][2]))
            if k is kind and (namespace is None or not kind.namespaced or ns == namespace)
            and _labels_match(obj, labels)
        ]

    def create(self, obj: dict[str, Any], *, dry_run: bool = False) -> dict[str, Any]:
        kind = ResourceKind.of(obj)
        namespace, name = object_key(obj)
        self.call_log.append(("create", kind.kind, name))
        if self._key(kind, name, namespace) in self.objects:
            raise ApplyConflict(f'{kind.plural} "{name}" already exists')
        if dry_run:
            return copy.deepcopy(obj)
        return self.add(obj)

    def replace(self, obj: dict[str, Any], *, dry_run: bool = False) -> dict[str, Any]:
        while self.before_replace:
            self.before_replace.pop(0)(self)

        kind = ResourceKind.of(obj)
        namespace, name = object_key(obj)
        self.call_log.append(("replace", kind.kind, name))
        key = self._key(kind, name, namespace)
        if key not in self.objects:
            raise ResourceNotFound(f'{kind.plural} "{name}" not found')

        live = self.objects[key]
        sent_version = obj.get("metadata", {}).get("resourceVersion")
        if sent_version and sent_version != live["metadata"]["resourceVersion"]:
            raise ApplyConflict(f"Operation cannot be fulfilled on {kind.plural} \"{name}\": the object has been modified")
        if dry_run:
            return copy.deepcopy(obj)

        stored = copy.deepcopy(obj)
        stored["metadata"]["uid"] = live["metadata"].get("uid", "")
        stored["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[key] = stored
        return copy.deepcopy(stored)

    def failing_lists(self, message: str = "connection refused") -> None:
        self.fail_list = OrchestratorError(message)


# ═══════════════════════════════════════════════════════════════════
#  Operator interaction
# ═══════════════════════════════════════════════════════════════════


class MockPrompter(Prompter):
    """Answers prompts from pre-loaded queues; records every question."""

    def __init__(self, yes_no: Sequence[bool] = (), choices: Sequence[int] = ()):
        self.yes_no_answers = list(yes_no)
        self.choice_answers = list(choices)
        self.questions: list[str] = []
        self.choice_options: list[list[str]] = []

    def prompt_yes_no(self, question: str, default: bool) -> bool:
        self.questions.append(question)
        if self.yes_no_answers:
            return self.yes_no_answers.pop(0)
        return default

    def prompt_choice(self, question: str, options: Sequence[str]) -> int:
        self.questions.append(question)
        self.choice_options.append(list(options))
        if not self.choice_answers:
            raise AmbiguousMatch(f"{question}: no selection")
        return self.choice_answers.pop(0)
