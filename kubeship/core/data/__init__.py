"""
Static data shipped with the package.

Currently the default component build recipe, used when a component
directory carries no ``Dockerfile`` of its own.
"""

from __future__ import annotations

from pathlib import Path

_DATA_DIR = Path(__file__).parent

DEFAULT_DOCKERFILE = "Dockerfile"


def default_dockerfile() -> bytes:
    """Contents of the built-in component Dockerfile."""
    return (_DATA_DIR / DEFAULT_DOCKERFILE).read_bytes()
