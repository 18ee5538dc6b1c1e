"""
Target platform resolution — which platform instance this invocation uses.

Resolved once per invocation: explicit flags first, then the preference
remembered in the user config, then whatever the cluster offers (asking
the operator to choose when there is more than one).
"""

from __future__ import annotations

import logging

from kubeship.adapters.base import Orchestrator, Prompter
from kubeship.core.config.loader import load_user_config, save_user_config
from kubeship.core.errors import PlatformNotFound, ResourceNotFound
from kubeship.core.models.config import PlatformPreference, Settings
from kubeship.core.models.release import TargetPlatform
from kubeship.core.models.resources import ResourceKind, object_key

logger = logging.getLogger(__name__)


class PlatformResolver:
    """Resolves the ``TargetPlatform`` for this invocation."""

    def __init__(self, settings: Settings, orchestrator: Orchestrator, prompter: Prompter):
        self.settings = settings
        self.orchestrator = orchestrator
        self.prompter = prompter

    def _requested(self) -> TargetPlatform | None:
        flags = self.settings.flags
        if flags.platform:
            namespace = flags.namespace or self.settings.platform.namespace
            return TargetPlatform(namespace=namespace, name=flags.platform)
        stored = self.settings.platform
        if stored.name:
            return TargetPlatform(namespace=stored.namespace, name=stored.name)
        return None

    def resolve(self) -> TargetPlatform:
        requested = self._requested()
        if requested is not None:
            try:
                self.orchestrator.get(ResourceKind.PLATFORM, requested.name, requested.namespace)
                logger.debug("Using platform %s", requested)
                return requested
            except ResourceNotFound:
                logger.warning("Platform '%s' not found, choosing from available platforms", requested)
        return self.pick()

    def pick(self) -> TargetPlatform:
        """Choose among the platforms on the cluster."""
        namespace = self.settings.flags.namespace or None
        platforms = [
            TargetPlatform(namespace=ns, name=name)
            for ns, name in (object_key(p) for p in self.orchestrator.list(ResourceKind.PLATFORM, namespace))
        ]

        if not platforms:
            raise PlatformNotFound(
                "No platforms found on the current cluster. "
                "A platform instance must be running before components can be deployed."
            )
        if len(platforms) == 1:
            return platforms[0]

        index = self.prompter.prompt_choice(
            "Select the platform to use:", [str(p) for p in platforms]
        )
        chosen = platforms[index]
        if self.prompter.prompt_yes_no("Remember selected platform?", True):
            self.remember(chosen)
        return chosen

    def remember(self, platform: TargetPlatform) -> None:
        path = self.settings.user_config_path
        config = load_user_config(path)
        config.platform = PlatformPreference(namespace=platform.namespace, name=platform.name)
        save_user_config(config, path)
