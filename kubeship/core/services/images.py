"""
Image resolver/builder — one container image per component identity.

The tag of a component image is fully determined by the registry, the
app, the component and its content identity, so an image that already
exists never needs rebuilding. Builds stream their log, and any record
carrying an ``error`` field aborts the build.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone

from kubeship.adapters.base import BuildRequest, ContainerEngine, VersionControl
from kubeship.core.data import default_dockerfile
from kubeship.core.errors import ConfigError, ImageBuildFailed, ImageNotFound, ImagePushFailed
from kubeship.core.models.app import App
from kubeship.core.models.config import Settings
from kubeship.core.models.deployment import ComponentIdentity, ImageRef
from kubeship.core.models.resources import (
    LABEL_OCI_COMPONENT,
    LABEL_OCI_CREATED,
    LABEL_OCI_REVISION,
    LABEL_OCI_SOURCE,
)
from kubeship.core.naming import clean_name
from kubeship.core.services.build_context import INJECTED_DOCKERFILE, build_context
from kubeship.core.services.identity import IdentityDeriver

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_USERNAME = "kubeship"


@dataclass(frozen=True)
class BuildOptions:
    """How hard ``ensure_image`` should try."""

    force: bool = False
    no_cache: bool = False
    push: bool = False
    sideload_target: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> BuildOptions:
        flags = settings.flags
        return cls(
            force=flags.force_build,
            no_cache=flags.no_cache,
            push=flags.push_image,
            sideload_target=settings.sideload_target,
        )


# ── Build log records ───────────────────────────────────────────


def parse_build_line(line: str) -> dict:
    """Turn one line of build/push output into a record.

    JSON lines (the engine's native stream format) are used as-is; plain
    text becomes ``{"stream": line}``, except error banners which become
    ``{"error": line}``.
    """
    stripped = line.strip()
    if stripped.startswith("{"):
        try:
            record = json.loads(stripped)
        except ValueError:
            record = None
        if isinstance(record, dict):
            return record
    if stripped.startswith(("ERROR", "error:")):
        return {"error": stripped}
    return {"stream": line}


def _record_message(record: dict) -> str:
    parts = [str(record[k]) for k in ("stream", "status", "id") if k in record]
    return " ".join(parts).replace("\n", "").strip()


def consume_log(lines: Iterator[str], failure: Callable[[str], Exception]) -> int:
    """Log each record of *lines*; raise ``failure(error)`` on the first error.

    Returns the number of records consumed.
    """
    count = 0
    with contextlib.closing(lines):  # type: ignore[type-var]
        for line in lines:
            record = parse_build_line(line)
            count += 1
            if "error" in record:
                raise failure(str(record["error"]))
            message = _record_message(record)
            if message:
                logger.debug("%s", message)
    return count


# ── Builder ─────────────────────────────────────────────────────


class ImageBuilder:
    """Resolves, builds, pushes and side-loads component images."""

    def __init__(
        self,
        settings: Settings,
        app: App,
        engine: ContainerEngine,
        vcs: VersionControl,
        deriver: IdentityDeriver | None = None,
    ):
        self.settings = settings
        self.app = app
        self.engine = engine
        self.vcs = vcs
        self.deriver = deriver or IdentityDeriver(vcs)
        self._logged_in = False

    # ── References ──────────────────────────────────────────────

    def image_ref(self, component_name: str, content_hash: str) -> ImageRef:
        return ImageRef(
            registry_address=self.settings.registry_address,
            app_name=self.app.name,
            component_name=component_name,
            content_hash=content_hash,
        )

    def component_dir_names(self) -> list[str]:
        """Sub-directories of the app's ``components/`` directory, sorted."""
        root = self.settings.components_dir
        if not root.is_dir():
            return []
        return sorted(p.name for p in root.iterdir() if p.is_dir() and not p.name.startswith("."))

    def component_scope(self, dir_name: str) -> str:
        return self.settings.repo_subpath(self.settings.component_dir(dir_name))

    # ── Existence ───────────────────────────────────────────────

    def _login(self) -> None:
        registry = self.settings.registry
        if self._logged_in or not registry.token or self.settings.registry_is_local:
            return
        self.engine.login(
            self.settings.registry_address,
            registry.username or DEFAULT_REGISTRY_USERNAME,
            registry.token,
        )
        self._logged_in = True

    def image_exists(self, ref: ImageRef, pull: bool = False) -> bool:
        """Whether *ref* is available, optionally pulling it locally.

        A local-only registry is checked against the local cache alone;
        otherwise the remote registry's manifest decides.

        Raises:
            ImageNotFound: *pull* was requested and the image cannot be
                made local.
        """
        tag = str(ref)
        if self.settings.registry_is_local:
            found = self.engine.image_exists_local(tag)
            logger.debug("Image '%s' %s locally", tag, "found" if found else "not found")
            if not found and pull:
                raise ImageNotFound(
                    f"Component image '{tag}' does not exist locally and no remote registry is available"
                )
            return found

        self._login()
        if not self.engine.manifest_exists(tag):
            return False

        if pull and not self.engine.image_exists_local(tag):
            logger.info("Pulling component image '%s'", tag)
            consume_log(self.engine.pull(tag), lambda err: ImageNotFound(f"Error pulling '{tag}': {err}"))
        return True

    # ── Build / push / side-load ────────────────────────────────

    def _recipe(self, dir_name: str) -> bytes:
        custom = self.settings.component_dir(dir_name) / "Dockerfile"
        if custom.is_file():
            logger.debug("Using custom Dockerfile %s", custom)
            return custom.read_bytes()
        logger.debug("Using default Dockerfile for %s", dir_name)
        return default_dockerfile()

    def _build(self, dir_name: str, identity: ComponentIdentity, ref: ImageRef, opts: BuildOptions) -> None:
        head = self.vcs.head_ref()
        now = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        component_name = identity.component_name

        build_args = {
            "APP_YAML": self.settings.repo_subpath(self.settings.app_path / "app.yaml"),
            "BUILD_DATE": now,
            "COMPONENT": component_name,
            "COMPONENT_DIR": identity.scope_path,
            "COMPONENT_COMMIT": identity.content_hash,
            "ROOT_COMMIT": self.vcs.root_commit(),
            "HEAD_REF": f"refs/heads/{head.branch}" if head.branch else "",
            "TAG_REF": f"refs/tags/{head.tag}" if head.tag else "",
        }
        logger.debug("Build args: %s", build_args)
        labels = {
            LABEL_OCI_COMPONENT: component_name,
            LABEL_OCI_CREATED: now,
            LABEL_OCI_REVISION: identity.content_hash,
            LABEL_OCI_SOURCE: self.vcs.remote_url(),
        }

        logger.info("Building component image '%s'", ref)
        with build_context(self.settings.repo_path, self._recipe(dir_name)) as context:
            request = BuildRequest(
                context=context,
                dockerfile=INJECTED_DOCKERFILE,
                tags=[ref.tag],
                build_args=build_args,
                labels=labels,
                no_cache=opts.no_cache,
            )
            consume_log(self.engine.build(request), lambda err: ImageBuildFailed(f"Error building '{ref}': {err}"))

    def push(self, ref: ImageRef) -> None:
        self._login()
        logger.info("Pushing component image '%s'", ref)
        consume_log(self.engine.push(ref.tag), lambda err: ImagePushFailed(f"Error pushing '{ref}': {err}"))

    def sideload(self, ref: ImageRef, cluster: str) -> None:
        """Load *ref* into the kind cluster *cluster*; fatal if unavailable."""
        logger.info("Loading component image '%s' into kind cluster '%s'", ref, cluster)
        if not self.image_exists(ref, pull=True):
            raise ImageNotFound(f"Component image '{ref}' does not exist, build it first")
        self.engine.sideload(ref.tag, cluster)

    def ensure_image(
        self,
        dir_name: str,
        identity: ComponentIdentity,
        opts: BuildOptions,
    ) -> ImageRef:
        """Make sure the image for *identity* exists (and is distributed).

        An existing image is left alone unless ``force``/``no_cache``.
        """
        ref = self.image_ref(identity.component_name, identity.content_hash)

        if not (opts.force or opts.no_cache) and self.image_exists(ref):
            logger.info("Component image '%s' exists, skipping build", ref)
        else:
            self._build(dir_name, identity, ref, opts)
            if self.settings.registry_is_local:
                logger.debug("Local registry is set, skipping push of '%s'", ref)
            elif opts.push:
                self.push(ref)

        if opts.sideload_target:
            self.sideload(ref, opts.sideload_target)
        return ref

    # ── Whole components ────────────────────────────────────────

    def identity_of(self, dir_name: str) -> ComponentIdentity:
        return self.deriver.identity_for(clean_name(dir_name), self.component_scope(dir_name))

    def build_component(self, dir_name: str, opts: BuildOptions) -> ImageRef:
        """Derive the identity of one component directory and ensure its image."""
        component_dir = self.settings.component_dir(dir_name)
        if not component_dir.is_dir():
            raise ConfigError(f"Component directory '{component_dir}' does not exist")
        return self.ensure_image(dir_name, self.identity_of(dir_name), opts)

    def publish_all(self, opts: BuildOptions) -> list[ImageRef]:
        """Ensure the image of every component of the app."""
        return [self.build_component(name, opts) for name in self.component_dir_names()]
