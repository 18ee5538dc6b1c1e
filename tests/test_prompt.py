"""
Tests for the click prompter and the process runners.
"""

import subprocess
from unittest.mock import patch

import click
import pytest

from kubeship.adapters.prompt import ClickPrompter
from kubeship.adapters.shell.command import run_command
from kubeship.core.errors import AmbiguousMatch, Cancelled


def _tty():
    return True


def _no_tty():
    return False


class TestYesNo:
    def test_no_tty_takes_default(self):
        prompter = ClickPrompter(interactive=_no_tty)
        assert prompter.prompt_yes_no("Continue?", True) is True
        assert prompter.prompt_yes_no("Continue?", False) is False

    @patch("kubeship.adapters.prompt.click.confirm", return_value=False)
    def test_asks_terminal(self, mock_confirm):
        assert ClickPrompter(interactive=_tty).prompt_yes_no("Continue?", True) is False
        mock_confirm.assert_called_once_with("Continue?", default=True)

    @patch("kubeship.adapters.prompt.click.confirm", side_effect=click.Abort())
    def test_abort(self, mock_confirm):
        with pytest.raises(Cancelled):
            ClickPrompter(interactive=_tty).prompt_yes_no("Continue?", True)


class TestChoice:
    def test_no_tty_is_ambiguous(self):
        with pytest.raises(AmbiguousMatch, match="2 candidates"):
            ClickPrompter(interactive=_no_tty).prompt_choice("Pick", ["a", "b"])

    def test_no_options(self):
        with pytest.raises(AmbiguousMatch):
            ClickPrompter(interactive=_tty).prompt_choice("Pick", [])

    @patch("kubeship.adapters.prompt.click.prompt", return_value="2")
    def test_valid_selection(self, mock_prompt):
        assert ClickPrompter(interactive=_tty).prompt_choice("Pick", ["a", "b", "c"]) == 1

    @patch("kubeship.adapters.prompt.click.prompt", side_effect=["x", "9", "", "3"])
    def test_reasks_until_valid(self, mock_prompt):
        assert ClickPrompter(interactive=_tty).prompt_choice("Pick", ["a", "b", "c"]) == 2
        assert mock_prompt.call_count == 4

    @patch("kubeship.adapters.prompt.click.prompt", return_value="0")
    def test_bounded_attempts(self, mock_prompt):
        with pytest.raises(AmbiguousMatch, match="3 attempts"):
            ClickPrompter(max_attempts=3, interactive=_tty).prompt_choice("Pick", ["a", "b"])
        assert mock_prompt.call_count == 3


class TestRunCommand:
    @patch("kubeship.adapters.shell.command.subprocess.run")
    def test_passes_through(self, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(["git"], 0, "ok", "")
        result = run_command(["git", "status"], timeout=5)
        assert result.stdout == "ok"
        assert mock_run.call_args[1]["timeout"] == 5

    @patch("kubeship.adapters.shell.command.subprocess.run")
    def test_timeout_cancels(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(["docker", "push"], 5)
        with pytest.raises(Cancelled, match="timed out"):
            run_command(["docker", "push", "x"], timeout=5)
