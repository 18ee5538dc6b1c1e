"""
Deployment assembler — Git state plus component images into a descriptor.

For every component directory the assembler derives the content
identity, makes sure the component image is available, then runs the
image once with ``-export`` to learn its declared routes, dependencies
and variables. The result is a ``DeploymentDescriptor`` ready for the
reconciler.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from kubeship.adapters.base import ContainerEngine, Prompter, VersionControl
from kubeship.core.errors import ConfigError, ImageNotFound, MetadataExtractionFailed
from kubeship.core.models.app import App
from kubeship.core.models.config import Settings
from kubeship.core.models.deployment import ComponentSpec, DeploymentDescriptor
from kubeship.core.naming import clean_name, require_valid_name
from kubeship.core.services.images import BuildOptions, ImageBuilder

logger = logging.getLogger(__name__)

EXPORT_ARGS = ("-export",)
EXPORT_TIMEOUT = 180  # seconds


class DeploymentAssembler:
    """Builds the ``DeploymentDescriptor`` for the app at HEAD."""

    def __init__(
        self,
        settings: Settings,
        app: App,
        vcs: VersionControl,
        engine: ContainerEngine,
        builder: ImageBuilder,
        prompter: Prompter,
    ):
        self.settings = settings
        self.app = app
        self.vcs = vcs
        self.engine = engine
        self.builder = builder
        self.prompter = prompter

    # ── Naming ──────────────────────────────────────────────────

    def deployment_name(self) -> str:
        """Name of the deployment resource for this invocation.

        Explicit name flag, else ``<app>-<version>``, ``<app>-<branch>``,
        ``<app>-<tag>`` and finally ``<app>-<commit>``.
        """
        flags = self.settings.flags
        if flags.deployment_name:
            return require_valid_name(flags.deployment_name, "deployment")

        head = self.vcs.head_ref()
        for suffix in (flags.version, head.branch, head.tag):
            if suffix:
                break
        else:
            suffix = self.vcs.head_commit().hash

        name = clean_name(f"{self.app.name}-{clean_name(suffix)}")
        return require_valid_name(name, "deployment")

    def maybe_create_tag(self) -> None:
        """Tag HEAD with the version when asked to and not already tagged."""
        flags = self.settings.flags
        if not flags.create_tag:
            return
        if not flags.version:
            raise ConfigError("--create-tag requires --version")
        if self.vcs.head_ref().tag == flags.version:
            logger.info("Tag '%s' already exists on HEAD", flags.version)
            return
        self.vcs.create_tag(flags.version)

    # ── Assembly ────────────────────────────────────────────────

    def _base_descriptor(self) -> DeploymentDescriptor:
        self.builder.deriver.require_clean()
        head = self.vcs.head_ref()
        commit = self.vcs.head_commit()

        components: dict[str, ComponentSpec] = {}
        for dir_name in self.builder.component_dir_names():
            identity = self.builder.identity_of(dir_name)
            components[identity.component_name] = ComponentSpec(commit=identity.content_hash)

        if not components:
            raise ConfigError(f"No components found in {self.settings.components_dir}")

        return DeploymentDescriptor(
            app_name=self.app.name,
            version=self.settings.flags.version,
            commit=commit.hash,
            commit_time=commit.committed_at,
            branch=head.branch,
            tag=head.tag,
            repo_url=self.vcs.remote_url(),
            container_registry=self.settings.registry_address,
            title=self.app.title,
            description=self.app.description,
            components=components,
        )

    def check_images(self, descriptor: DeploymentDescriptor) -> None:
        """Make sure every component image exists, offering to build missing ones."""
        sideload_target = self.settings.sideload_target
        missing: list[str] = []

        for name, spec in sorted(descriptor.components.items()):
            ref = self.builder.image_ref(name, spec.commit)
            if self.builder.image_exists(ref):
                logger.info("Component image '%s' exists", ref)
                if sideload_target:
                    self.builder.sideload(ref, sideload_target)
            else:
                logger.warning("Component image '%s' does not exist", ref)
                missing.append(str(ref))

        if not missing:
            return

        if not self.prompter.prompt_yes_no(
            f"{len(missing)} component image(s) missing, would you like to build them?", True
        ):
            raise ImageNotFound(
                "There are one or more missing component images: " + ", ".join(missing)
            )

        self.builder.publish_all(BuildOptions(
            no_cache=self.settings.flags.no_cache,
            push=True,
            sideload_target=sideload_target,
        ))

    def extract_definition(self, name: str, spec: ComponentSpec) -> ComponentSpec:
        """Run the component image with ``-export`` and merge what it reports."""
        ref = self.builder.image_ref(name, spec.commit)
        logger.info("Extracting definition of component '%s'", name)
        output = self.engine.run_export(ref.tag, EXPORT_ARGS, timeout=EXPORT_TIMEOUT)

        try:
            definition = json.loads(output)
        except ValueError as e:
            raise MetadataExtractionFailed(
                f"Component '{name}' did not export a valid definition: {e}"
            ) from e
        if not isinstance(definition, dict):
            raise MetadataExtractionFailed(f"Component '{name}' exported {type(definition).__name__}, not an object")

        try:
            return spec.merge_definition(definition)
        except ValidationError as e:
            raise MetadataExtractionFailed(f"Component '{name}' exported an invalid definition: {e}") from e

    def assemble(self, skip_image_check: bool = False) -> DeploymentDescriptor:
        """Assemble the descriptor (unnamed and unplaced) for HEAD."""
        descriptor = self._base_descriptor()
        logger.info(
            "Assembling deployment of '%s' at %s with %d component(s)",
            descriptor.app_name, descriptor.commit[:7], len(descriptor.components),
        )

        if not skip_image_check:
            self.check_images(descriptor)

        descriptor.components = {
            name: self.extract_definition(name, spec)
            for name, spec in sorted(descriptor.components.items())
        }
        descriptor.name = self.deployment_name()
        return descriptor
