"""
Click prompter — operator interaction at the tool's decision points.

Every prompt is a bounded loop: out-of-range or non-numeric input is
re-asked at most ``max_attempts`` times. Without an interactive
terminal, choices fail with ``AmbiguousMatch`` rather than guess, and
yes/no questions take their default.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Sequence

import click

from kubeship.adapters.base import Prompter
from kubeship.core.errors import AmbiguousMatch, Cancelled

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


class ClickPrompter(Prompter):
    """Prompter that reads from the terminal via click."""

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interactive: Callable[[], bool] | None = None,
    ):
        self.max_attempts = max_attempts
        self._interactive = interactive or sys.stdin.isatty

    def prompt_yes_no(self, question: str, default: bool) -> bool:
        if not self._interactive():
            logger.info("No interactive input; answering '%s' with default %s", question, default)
            return default
        try:
            return click.confirm(question, default=default)
        except click.Abort as e:
            raise Cancelled("Prompt aborted") from e

    def prompt_choice(self, question: str, options: Sequence[str]) -> int:
        if not options:
            raise AmbiguousMatch(f"{question}: nothing to choose from")
        if not self._interactive():
            raise AmbiguousMatch(
                f"{question}: {len(options)} candidates and no interactive input to choose from"
            )

        click.echo(question)
        for i, option in enumerate(options, start=1):
            click.echo(f"  {i}. {option}")

        for _ in range(self.max_attempts):
            try:
                answer = click.prompt("Selection", type=str, default="", show_default=False)
            except click.Abort as e:
                raise Cancelled("Prompt aborted") from e
            answer = answer.strip()
            if answer.isdigit() and 1 <= int(answer) <= len(options):
                return int(answer) - 1
            click.secho(f"Please enter a number between 1 and {len(options)}.", fg="yellow")

        raise AmbiguousMatch(f"{question}: no valid selection after {self.max_attempts} attempts")
