"""
Docker adapter — image builds, registry traffic and throwaway containers.

Uses the docker CLI — never the Docker API directly. Local kind clusters
are fed through the kind CLI (``kind load docker-image``).
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterator, Sequence
from pathlib import Path

from kubeship.adapters.base import BuildRequest, ContainerEngine
from kubeship.adapters.shell.command import StreamLine, run_command, stream_command
from kubeship.core.deadline import Deadline
from kubeship.core.errors import (
    CredentialError,
    ImageBuildFailed,
    ImageNotFound,
    ImagePushFailed,
    MetadataExtractionFailed,
    SideloadFailed,
)

logger = logging.getLogger(__name__)

# Timeout caps (seconds); the invocation deadline may shorten them.
_INSPECT_TIMEOUT = 30
_REGISTRY_TIMEOUT = 120
_TRANSFER_IDLE_TIMEOUT = 600
_SIDELOAD_TIMEOUT = 300


# ── Runners ─────────────────────────────────────────────────────


def run_docker(
    *args: str,
    timeout: float = 60,
    input: str | None = None,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run a docker command and return the result."""
    return run_command(["docker", *args], cwd=cwd, timeout=timeout, input=input)


def run_docker_stream(
    *args: str,
    timeout: float = 600,
    stdin_path: Path | None = None,
) -> Iterator[StreamLine]:
    """Stream a ``docker <args>`` command, yielding lines in real time."""
    if stdin_path is None:
        yield from stream_command(["docker", *args], timeout=timeout)
        return
    with open(stdin_path, "rb") as stdin:
        yield from stream_command(["docker", *args], timeout=timeout, stdin=stdin)


def kind_load(ref: str, cluster: str, timeout: float = _SIDELOAD_TIMEOUT) -> str:
    """Side-load a local image into the kind cluster *cluster*."""
    result = run_command(
        ["kind", "load", "docker-image", f"--name={cluster}", ref],
        timeout=timeout,
    )
    if result.returncode != 0:
        raise SideloadFailed(
            f"Failed to load '{ref}' into kind cluster '{cluster}': "
            f"{result.stderr.strip() or result.stdout.strip()}"
        )
    return result.stdout + result.stderr


def _tail(lines: list[str], count: int = 5) -> str:
    return "\n".join(lines[-count:])


class DockerEngine(ContainerEngine):
    """ContainerEngine backed by the docker CLI."""

    def __init__(self, deadline: Deadline | None = None):
        self._deadline = deadline or Deadline.unbounded()

    # ── Existence ───────────────────────────────────────────────

    def image_exists_local(self, ref: str) -> bool:
        result = run_docker(
            "image", "inspect", "--format", "{{.Id}}", ref,
            timeout=self._deadline.timeout_for(_INSPECT_TIMEOUT),
        )
        return result.returncode == 0

    def manifest_exists(self, ref: str) -> bool:
        result = run_docker(
            "manifest", "inspect", ref,
            timeout=self._deadline.timeout_for(_REGISTRY_TIMEOUT),
        )
        if result.returncode == 0:
            return True
        err = result.stderr.lower()
        if "unauthorized" in err or "denied" in err:
            raise CredentialError(f"Registry rejected credentials for '{ref}': {result.stderr.strip()}")
        logger.debug("No manifest for %s: %s", ref, result.stderr.strip())
        return False

    # ── Streaming transfers ─────────────────────────────────────

    def _stream(
        self,
        args: list[str],
        failure: type[Exception],
        what: str,
        stdin_path: Path | None = None,
    ) -> Iterator[str]:
        lines: list[str] = []
        timeout = self._deadline.timeout_for(_TRANSFER_IDLE_TIMEOUT)
        for source, line in run_docker_stream(*args, timeout=timeout, stdin_path=stdin_path):
            if source == "exit":
                if line != 0:
                    raise failure(f"{what} exited with code {line}:\n{_tail(lines)}")
                return
            lines.append(str(line))
            yield str(line)

    def pull(self, ref: str) -> Iterator[str]:
        yield from self._stream(["pull", ref], ImageNotFound, f"docker pull {ref}")

    def build(self, request: BuildRequest) -> Iterator[str]:
        args = ["build", "--file", request.dockerfile]
        for tag in request.tags:
            args += ["--tag", tag]
        for key, value in sorted(request.build_args.items()):
            args += ["--build-arg", f"{key}={value}"]
        for key, value in sorted(request.labels.items()):
            args += ["--label", f"{key}={value}"]
        if request.no_cache:
            args.append("--no-cache")
        args.append("-")  # context archive on stdin

        logger.debug("Building %s from %s", request.tags, request.context)
        yield from self._stream(args, ImageBuildFailed, "docker build", stdin_path=request.context)

    def push(self, ref: str) -> Iterator[str]:
        yield from self._stream(["push", ref], ImagePushFailed, f"docker push {ref}")

    def login(self, registry: str, username: str, token: str) -> None:
        result = run_docker(
            "login", registry, "--username", username, "--password-stdin",
            input=token,
            timeout=self._deadline.timeout_for(_REGISTRY_TIMEOUT),
        )
        if result.returncode != 0:
            raise CredentialError(f"Login to {registry} failed: {result.stderr.strip()}")
        logger.info("Logged in to %s as %s", registry, username)

    # ── Throwaway containers ────────────────────────────────────

    def run_export(self, ref: str, args: Sequence[str], timeout: float) -> str:
        deadline = Deadline(min(timeout, self._deadline.remaining()))

        created = run_docker("create", ref, *args, timeout=deadline.timeout_for(_INSPECT_TIMEOUT))
        if created.returncode != 0:
            raise MetadataExtractionFailed(
                f"Could not create container from '{ref}': {created.stderr.strip()}"
            )
        container_id = created.stdout.strip()

        try:
            started = run_docker("start", container_id, timeout=deadline.timeout_for(_INSPECT_TIMEOUT))
            if started.returncode != 0:
                raise MetadataExtractionFailed(
                    f"Could not start container for '{ref}': {started.stderr.strip()}"
                )

            waited = run_docker("wait", container_id, timeout=deadline.timeout_for(timeout))
            status = waited.stdout.strip()
            if waited.returncode != 0 or status != "0":
                logs = run_docker("logs", container_id, timeout=deadline.timeout_for(_INSPECT_TIMEOUT))
                raise MetadataExtractionFailed(
                    f"Container for '{ref}' exited with status {status or '?'}: "
                    f"{logs.stderr.strip() or waited.stderr.strip()}"
                )

            logs = run_docker("logs", container_id, timeout=deadline.timeout_for(_INSPECT_TIMEOUT))
            if logs.returncode != 0:
                raise MetadataExtractionFailed(
                    f"Could not read output of container for '{ref}': {logs.stderr.strip()}"
                )
            return logs.stdout
        finally:
            # Not bound to the deadline; cleanup must run after expiry too.
            removed = run_docker("rm", "--force", container_id, timeout=_INSPECT_TIMEOUT)
            if removed.returncode != 0:
                logger.warning("Failed to remove container %s: %s", container_id, removed.stderr.strip())

    def sideload(self, ref: str, cluster: str) -> str:
        output = kind_load(ref, cluster, timeout=self._deadline.timeout_for(_SIDELOAD_TIMEOUT))
        logger.info("Loaded %s into kind cluster %s", ref, cluster)
        return output
