"""
Kubectl adapter — cluster resource CRUD through the kubectl CLI.

Objects travel as JSON on stdin/stdout. Server errors are classified
from kubectl's stderr so callers can tell a missing object
(``ResourceNotFound``) and a stale write (``ApplyConflict``) apart from
everything else (``OrchestratorError``).
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Any

from kubeship.adapters.base import Orchestrator
from kubeship.adapters.shell.command import run_command
from kubeship.core.deadline import Deadline
from kubeship.core.errors import ApplyConflict, OrchestratorError, ResourceNotFound
from kubeship.core.models.resources import ResourceKind, object_key

logger = logging.getLogger(__name__)

_READ_TIMEOUT = 30
_WRITE_TIMEOUT = 60

_NOT_FOUND_MARKERS = ("(NotFound)",)
_CONFLICT_MARKERS = ("(Conflict)", "(AlreadyExists)", "the object has been modified")


def _run_kubectl(
    *args: str,
    timeout: float = 15,
    input: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a kubectl command and return the result."""
    return run_command(["kubectl", *args], timeout=timeout, input=input)


def _selector(labels: dict[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def _raise_for(result: subprocess.CompletedProcess[str], what: str) -> None:
    err = result.stderr.strip() or result.stdout.strip()
    if any(marker in err for marker in _CONFLICT_MARKERS):
        raise ApplyConflict(f"{what}: {err}")
    if any(marker in err for marker in _NOT_FOUND_MARKERS):
        raise ResourceNotFound(f"{what}: {err}")
    raise OrchestratorError(f"{what} failed: {err}")


def _parse(result: subprocess.CompletedProcess[str], what: str) -> dict[str, Any]:
    try:
        data = json.loads(result.stdout)
    except ValueError as e:
        raise OrchestratorError(f"{what}: kubectl returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise OrchestratorError(f"{what}: unexpected kubectl output")
    return data


class KubectlOrchestrator(Orchestrator):
    """Orchestrator backed by the current kubectl context."""

    def __init__(self, deadline: Deadline | None = None, context: str = ""):
        self._deadline = deadline or Deadline.unbounded()
        self._context = context

    def _kubectl(self, *args: str, cap: float, input: str | None = None, timeout: float | None = None):
        if self._context:
            args = ("--context", self._context, *args)
        limit = min(cap, timeout) if timeout is not None else self._deadline.timeout_for(cap)
        return _run_kubectl(*args, timeout=limit, input=input)

    def get(self, kind: ResourceKind, name: str, namespace: str = "") -> dict[str, Any]:
        args = ["get", kind.resource, name, "-o", "json"]
        if kind.namespaced and namespace:
            args += ["-n", namespace]
        what = f"get {kind.kind} {namespace + '/' if namespace else ''}{name}"

        result = self._kubectl(*args, cap=_READ_TIMEOUT)
        if result.returncode != 0:
            _raise_for(result, what)
        return _parse(result, what)

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        labels: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        args = ["get", kind.resource, "-o", "json"]
        if kind.namespaced:
            args += ["-n", namespace] if namespace else ["--all-namespaces"]
        if labels:
            args += ["-l", _selector(labels)]
        what = f"list {kind.kind}"

        result = self._kubectl(*args, cap=_READ_TIMEOUT, timeout=timeout)
        if result.returncode != 0:
            # Listing never yields NotFound for a missing match; surface everything
            raise OrchestratorError(f"{what} failed: {result.stderr.strip()}")
        items = _parse(result, what).get("items") or []
        logger.debug("%s → %d item(s)", what, len(items))
        return items

    def _write(self, verb: str, obj: dict[str, Any], dry_run: bool) -> dict[str, Any]:
        namespace, name = object_key(obj)
        what = f"{verb} {obj.get('kind')} {namespace + '/' if namespace else ''}{name}"
        args = [verb, "-f", "-", "-o", "json"]
        if dry_run:
            args.append("--dry-run=server")

        result = self._kubectl(*args, cap=_WRITE_TIMEOUT, input=json.dumps(obj))
        if result.returncode != 0:
            _raise_for(result, what)
        logger.info("%s%s", what, " (dry run)" if dry_run else "")
        return _parse(result, what)

    def create(self, obj: dict[str, Any], *, dry_run: bool = False) -> dict[str, Any]:
        return self._write("create", obj, dry_run)

    def replace(self, obj: dict[str, Any], *, dry_run: bool = False) -> dict[str, Any]:
        return self._write("replace", obj, dry_run)
