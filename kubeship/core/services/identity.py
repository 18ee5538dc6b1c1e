"""
Identity deriver — content identities for path scopes.

A component's identity is the hash of the most recent commit that
touched its directory. Identical repository state gives the identical
identity; any commit under the directory changes it; commits elsewhere
in the tree do not.
"""

from __future__ import annotations

import logging

from kubeship.adapters.base import VersionControl
from kubeship.core.errors import NoHistory, UncommittedChanges
from kubeship.core.models.deployment import ComponentIdentity

logger = logging.getLogger(__name__)


class IdentityDeriver:
    """Derives content identities from version-control history."""

    def __init__(self, vcs: VersionControl):
        self.vcs = vcs

    def require_clean(self) -> None:
        """Raise ``UncommittedChanges`` unless the working tree is clean."""
        if not self.vcs.is_clean():
            raise UncommittedChanges(
                "Uncommitted changes present in the repository. "
                "Commit them before building so component identities are reproducible."
            )

    def derive(self, scope_path: str) -> str:
        """Hash of the most recent commit touching *scope_path*.

        Args:
            scope_path: Path prefix relative to the repository root.

        Raises:
            UncommittedChanges: The working tree is dirty.
            NoHistory: No commit ever touched *scope_path*.
        """
        self.require_clean()

        history = self.vcs.log(scope_path, limit=1)
        if not history:
            raise NoHistory(f"No commits found touching '{scope_path}'")

        content_hash = history[0].hash
        logger.debug("Identity of %s is %s", scope_path, content_hash)
        return content_hash

    def identity_for(self, component_name: str, scope_path: str) -> ComponentIdentity:
        return ComponentIdentity(
            component_name=component_name,
            scope_path=scope_path,
            content_hash=self.derive(scope_path),
        )
