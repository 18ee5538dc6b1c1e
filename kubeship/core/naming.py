"""
Resource naming rules shared by apps, components and deployments.

Names end up as Kubernetes object names and label values, so they are
restricted to lowercase alphanumerics and dashes (DNS-1123 label).
"""

from __future__ import annotations

import re

from kubeship.core.errors import InvalidName

MAX_NAME_LENGTH = 63

_VALID_NAME = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_INVALID_CHARS = re.compile(r"[^a-z0-9-]+")
_DASH_RUNS = re.compile(r"-{2,}")


def is_valid_name(name: str) -> bool:
    """Whether *name* is usable as a resource name."""
    return bool(name) and len(name) <= MAX_NAME_LENGTH and bool(_VALID_NAME.match(name))


def clean_name(value: str) -> str:
    """Coerce an arbitrary string into a valid resource name.

    ``"Feature/My_Branch"`` → ``"feature-my-branch"``. Returns ``""``
    when nothing usable remains.
    """
    name = _INVALID_CHARS.sub("-", value.strip().lower())
    name = _DASH_RUNS.sub("-", name)
    return name[:MAX_NAME_LENGTH].strip("-")


def require_valid_name(name: str, what: str = "resource") -> str:
    """Return *name* unchanged, or raise ``InvalidName``."""
    if not is_valid_name(name):
        raise InvalidName(
            f"Invalid {what} name '{name}': valid names contain only lowercase "
            "alpha-numeric characters and dashes."
        )
    return name
