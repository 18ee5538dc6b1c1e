"""
Build context archives.

The context handed to ``docker build`` is a tar of the repository root,
minus ``.dockerignore`` patterns, with the component's recipe injected
as an extra ``__Dockerfile`` entry. Injecting the recipe lets a component
carry its own Dockerfile (or none) while the context stays the whole
repository.
"""

from __future__ import annotations

import contextlib
import fnmatch
import io
import logging
import os
import tarfile
import tempfile
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

INJECTED_DOCKERFILE = "__Dockerfile"

DEFAULT_IGNORE = (".git",)


class IgnoreRules:
    """``.dockerignore`` matching: last matching pattern wins, ``!`` negates."""

    def __init__(self, patterns: list[str]):
        self.rules: list[tuple[str, bool]] = []
        for raw in patterns:
            pattern = raw.strip()
            if not pattern or pattern.startswith("#"):
                continue
            negate = pattern.startswith("!")
            if negate:
                pattern = pattern[1:].strip()
            pattern = os.path.normpath(pattern.lstrip("/")).replace(os.sep, "/")
            self.rules.append((pattern, negate))

    @classmethod
    def load(cls, root: Path) -> IgnoreRules:
        path = root / ".dockerignore"
        if not path.is_file():
            return cls(list(DEFAULT_IGNORE))
        logger.debug("Using ignore patterns from %s", path)
        return cls(path.read_text(encoding="utf-8").splitlines())

    @property
    def has_negations(self) -> bool:
        return any(negate for _, negate in self.rules)

    @staticmethod
    def _match_segments(pattern: list[str], parts: list[str]) -> bool:
        if not pattern:
            return not parts
        head, rest = pattern[0], pattern[1:]
        if head == "**":
            return any(IgnoreRules._match_segments(rest, parts[i:]) for i in range(len(parts) + 1))
        return (
            bool(parts)
            and fnmatch.fnmatchcase(parts[0], head)
            and IgnoreRules._match_segments(rest, parts[1:])
        )

    @staticmethod
    def _match(pattern: str, rel_path: str) -> bool:
        """Match one path segment at a time; only ``**`` spans directories.

        A pattern matching a directory excludes everything beneath it.
        """
        segments = pattern.split("/")
        parts = rel_path.split("/")
        return any(IgnoreRules._match_segments(segments, parts[:i]) for i in range(1, len(parts) + 1))

    def excludes(self, rel_path: str) -> bool:
        excluded = False
        for pattern, negate in self.rules:
            if self._match(pattern, rel_path):
                excluded = not negate
        return excluded


def _add_bytes(tar: tarfile.TarFile, name: str, data: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = 0o644
    tar.addfile(info, io.BytesIO(data))


def write_context(root: Path, dockerfile: bytes, dest: Path) -> int:
    """Write the context archive for *root* to *dest*; returns the entry count."""
    rules = IgnoreRules.load(root)
    prune = not rules.has_negations
    count = 0

    with tarfile.open(dest, "w") as tar:
        _add_bytes(tar, INJECTED_DOCKERFILE, dockerfile)
        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir

            if prune:
                dirnames[:] = [
                    d for d in sorted(dirnames)
                    if not rules.excludes(f"{rel_dir}/{d}" if rel_dir else d)
                ]
            else:
                dirnames.sort()

            for name in sorted(filenames):
                rel = f"{rel_dir}/{name}" if rel_dir else name
                if rel == INJECTED_DOCKERFILE or rules.excludes(rel):
                    continue
                tar.add(os.path.join(dirpath, name), arcname=rel, recursive=False)
                count += 1

    logger.debug("Build context for %s: %d file(s)", root, count)
    return count


@contextlib.contextmanager
def build_context(root: Path, dockerfile: bytes) -> Iterator[Path]:
    """Yield a temporary context archive for *root*, removed on exit."""
    fd, name = tempfile.mkstemp(prefix="kubeship-context-", suffix=".tar")
    os.close(fd)
    path = Path(name)
    try:
        write_context(root, dockerfile, path)
        yield path
    finally:
        path.unlink(missing_ok=True)
