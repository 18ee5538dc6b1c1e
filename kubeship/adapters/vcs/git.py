"""
Git adapter — version control operations through the git CLI.

Reads history and HEAD state for identity derivation and deployment
metadata, and performs the two writes the tool ever makes: a commit
and a tag.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from kubeship.adapters.base import Changeset, HeadRef, VersionControl
from kubeship.adapters.shell.command import run_command
from kubeship.core.deadline import Deadline
from kubeship.core.errors import NoHistory, VersionControlError

logger = logging.getLogger(__name__)

# Field separator for --format output.
_SEP = "\x1f"
_LOG_FORMAT = _SEP.join(("%H", "%h", "%cI", "%s"))

IGNORE_UNCOMMITTED_ENV = "KUBESHIP_IGNORE_UNCOMMITTED"


def run_git(
    *args: str,
    cwd: Path,
    timeout: float = 15,
) -> subprocess.CompletedProcess[str]:
    """Run a git command and return the result."""
    return run_command(["git", *args], cwd=cwd, timeout=timeout)


def _parse_changeset(line: str) -> Changeset:
    full, short, committed, subject = (line.split(_SEP) + ["", "", "", ""])[:4]
    return Changeset(
        hash=full,
        short_hash=short,
        committed_at=datetime.fromisoformat(committed),
        subject=subject,
    )


class GitRepository(VersionControl):
    """A git working tree on disk."""

    def __init__(self, root: Path, deadline: Deadline | None = None):
        self._root = root.resolve()
        self._deadline = deadline or Deadline.unbounded()

    @classmethod
    def discover(cls, start: Path, deadline: Deadline | None = None) -> GitRepository:
        """Open the repository containing *start*."""
        result = run_git("rev-parse", "--show-toplevel", cwd=start)
        if result.returncode != 0:
            raise VersionControlError(
                f"{start} is not inside a git repository: {result.stderr.strip()}"
            )
        return cls(Path(result.stdout.strip()), deadline)

    @property
    def root(self) -> Path:
        return self._root

    def _git(self, *args: str, cap: float = 15, ok_codes: tuple[int, ...] = (0,)) -> str:
        result = run_git(*args, cwd=self._root, timeout=self._deadline.timeout_for(cap))
        if result.returncode not in ok_codes:
            raise VersionControlError(
                f"git {args[0]} failed: {result.stderr.strip() or result.stdout.strip()}"
            )
        return result.stdout

    # ── Reads ───────────────────────────────────────────────────

    def is_clean(self) -> bool:
        if os.environ.get(IGNORE_UNCOMMITTED_ENV, "").lower() in ("1", "true", "yes"):
            logger.warning(
                "%s is set: ignoring uncommitted changes, identities may not be reproducible",
                IGNORE_UNCOMMITTED_ENV,
            )
            return True
        porcelain = self._git("status", "--porcelain")
        return not porcelain.strip()

    def head_ref(self) -> HeadRef:
        # symbolic-ref exits 1 on a detached HEAD
        branch = self._git("symbolic-ref", "--short", "-q", "HEAD", ok_codes=(0, 1)).strip()
        tags = self._git("tag", "--points-at", "HEAD", "--sort=-creatordate").split()
        return HeadRef(branch=branch, tag=tags[0] if tags else "")

    def head_commit(self) -> Changeset:
        result = run_git(
            "log", "-1", f"--format={_LOG_FORMAT}", "HEAD",
            cwd=self._root, timeout=self._deadline.timeout_for(15),
        )
        if result.returncode != 0 or not result.stdout.strip():
            raise NoHistory(f"Repository {self._root} has no commits")
        return _parse_changeset(result.stdout.strip())

    def log(self, path_prefix: str, limit: int | None = None) -> Sequence[Changeset]:
        args = ["log", f"--format={_LOG_FORMAT}"]
        if limit is not None:
            args.append(f"--max-count={limit}")
        args += ["--", path_prefix or "."]
        # Fresh repositories have no HEAD to walk
        out = self._git(*args, cap=60, ok_codes=(0, 128))
        return [_parse_changeset(line) for line in out.splitlines() if line.strip()]

    def root_commit(self) -> str:
        out = self._git("rev-list", "--max-parents=0", "HEAD")
        roots = out.split()
        return roots[-1] if roots else ""

    def remote_url(self) -> str:
        result = run_git(
            "remote", "get-url", "origin",
            cwd=self._root, timeout=self._deadline.timeout_for(15),
        )
        if result.returncode != 0:
            logger.debug("No origin remote: %s", result.stderr.strip())
            return ""
        return result.stdout.strip()

    # ── Writes ──────────────────────────────────────────────────

    def create_tag(self, name: str) -> str:
        self._git("tag", name)
        logger.info("Created tag %s", name)
        return f"refs/tags/{name}"
