"""
Error taxonomy — every failure the core can surface to the operator.

Core services raise these; the CLI layer catches ``KubeshipError``,
prints ``message`` and exits with ``exit_code``. There is no
partial-success mode: anything raised here aborts the invocation.
"""

from __future__ import annotations

from typing import Any


class KubeshipError(Exception):
    """Base class for all user-facing failures."""

    exit_code: int = 1

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details

    def __str__(self) -> str:
        return self.message


class ConfigError(KubeshipError):
    """Raised when app or user configuration is invalid or missing."""


# ── Identity ────────────────────────────────────────────────────


class UncommittedChanges(KubeshipError):
    """The working tree has modifications; identities would not be reproducible."""


class NoHistory(KubeshipError):
    """No commit ever touched the requested path."""


class InvalidName(KubeshipError):
    """A resource name does not satisfy the naming rules."""


class VersionControlError(KubeshipError):
    """A git command failed."""


# ── Images ──────────────────────────────────────────────────────


class ImageNotFound(KubeshipError):
    """A component image is missing and could not be made available."""


class ImageBuildFailed(KubeshipError):
    """The image build reported an error or exited non-zero."""


class ImagePushFailed(KubeshipError):
    """Pushing an image to the registry failed."""


class SideloadFailed(KubeshipError):
    """Loading an image into the local test cluster failed."""


class MetadataExtractionFailed(KubeshipError):
    """Running a component image with ``-export`` did not yield a definition."""


class CredentialError(KubeshipError):
    """Registry credentials were rejected or could not be provisioned."""


# ── Orchestrator ────────────────────────────────────────────────


class OrchestratorError(KubeshipError):
    """An orchestrator call failed in a way that cannot be recovered."""


class ResourceNotFound(OrchestratorError):
    """The requested resource does not exist."""


class ApplyConflict(OrchestratorError):
    """A write lost a race with a concurrent edit of the same fields."""


class PlatformNotFound(KubeshipError):
    """No platform could be resolved for this invocation."""


class ReadinessTimeout(KubeshipError):
    """Workloads did not become ready before the deadline."""


# ── Release ─────────────────────────────────────────────────────


class AmbiguousMatch(KubeshipError):
    """Several candidates matched and no valid selection was made."""


class NoMatch(KubeshipError):
    """No deployment matched the identifier by name or any index label."""


class ValidationProblems(KubeshipError):
    """The deployment does not validate against the environment data."""

    def __init__(self, message: str = "", problems: list | None = None, **details: Any):
        super().__init__(message, **details)
        self.problems = problems or []


class ReleaseAborted(KubeshipError):
    """The operator declined to continue a release."""


class Cancelled(KubeshipError):
    """A blocking operation was interrupted or ran past its deadline."""

    exit_code = 130
