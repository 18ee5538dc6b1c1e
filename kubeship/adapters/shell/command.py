"""
Process runners — the only place external commands are spawned.

Provides a synchronous runner (``run_command``) and a streaming runner
(``stream_command``) that yields output lines in real time. Every call is
bounded by an explicit timeout; exceeding it kills the process and raises
``Cancelled``.
"""

from __future__ import annotations

import logging
import selectors
import subprocess
from collections.abc import Generator
from pathlib import Path
from typing import IO, Literal

from kubeship.core.errors import Cancelled

logger = logging.getLogger(__name__)


def run_command(
    cmd: list[str],
    *,
    cwd: Path | None = None,
    timeout: float = 60,
    input: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run *cmd* and return the completed process (stdout/stderr as text)."""
    logger.debug("Running: %s (cwd=%s, timeout=%ss)", cmd, cwd, timeout)
    try:
        return subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input,
        )
    except subprocess.TimeoutExpired as e:
        raise Cancelled(f"'{' '.join(cmd[:3])}' timed out after {timeout:.0f}s") from e


# ── Streaming runner (Popen-based) ────────────────────────────────
#
# Yields (source, line) tuples where source is "stdout", "stderr", or
# "exit". The final yield is always ("exit", <returncode>).
#
# docker build sends progress to stderr, so both streams are read
# concurrently using selectors to avoid deadlocks.

StreamLine = tuple[Literal["stdout", "stderr", "exit"], str | int]


def stream_command(
    cmd: list[str],
    *,
    cwd: Path | None = None,
    timeout: float = 600,
    stdin: IO[bytes] | None = None,
) -> Generator[StreamLine, None, None]:
    """Run *cmd* via Popen and yield lines from stdout/stderr as they arrive.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        timeout: Maximum seconds to wait for the next line of output.
        stdin: Optional binary file fed to the process (e.g. a build context).

    Yields:
        ("stdout", line), ("stderr", line), and finally ("exit", code).

    Raises:
        Cancelled: If no output arrives within *timeout*.
    """
    logger.debug("Streaming command: %s (cwd=%s, timeout=%ss)", cmd, cwd, timeout)
    proc = subprocess.Popen(
        cmd,
        cwd=str(cwd) if cwd else None,
        stdin=stdin if stdin is not None else subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        bufsize=1,  # line-buffered
    )

    sel = selectors.DefaultSelector()
    try:
        if proc.stdout:
            sel.register(proc.stdout, selectors.EVENT_READ, "stdout")
        if proc.stderr:
            sel.register(proc.stderr, selectors.EVENT_READ, "stderr")

        open_streams = 2
        while open_streams > 0:
            events = sel.select(timeout=timeout)
            if not events:
                proc.kill()
                proc.wait()
                raise Cancelled(f"'{' '.join(cmd[:3])}' produced no output for {timeout:.0f}s")

            for key, _ in events:
                source: str = key.data
                line = key.fileobj.readline()  # type: ignore[union-attr]
                if not line:
                    sel.unregister(key.fileobj)
                    open_streams -= 1
                    continue
                yield (source, line.rstrip("\n"))  # type: ignore[misc]
    except GeneratorExit:
        proc.kill()
        proc.wait()
        raise
    finally:
        sel.close()

    proc.wait()
    yield ("exit", proc.returncode)
