"""Tests for custom instruction loading."""

from __future__ import annotations

from pathlib import Path

from src.agent.instructions import SEPARATOR, load_custom_instructions

PROJECT_FILE = Path(".switchboard/custom_instructions.md")


def _write_project(workspace: Path, text: str) -> None:
    path = workspace / PROJECT_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestLoadCustomInstructions:
    def test_nothing_configured(self, workspace: Path) -> None:
        assert load_custom_instructions("", workspace, PROJECT_FILE) == ""

    def test_global_only(self, workspace: Path) -> None:
        assert load_custom_instructions("  Be terse.\n", workspace, PROJECT_FILE) == "Be terse."

    def test_project_only(self, workspace: Path) -> None:
        _write_project(workspace, "\nUse tabs.\n")
        assert load_custom_instructions("", workspace, PROJECT_FILE) == "Use tabs."

    def test_both_joined_global_first(self, workspace: Path) -> None:
        _write_project(workspace, "Use tabs.")
        result = load_custom_instructions("Be terse.", workspace, PROJECT_FILE)
        assert result == "Be terse." + SEPARATOR + "Use tabs."
        assert SEPARATOR == "\n\n---\n\n"

    def test_whitespace_project_file_ignored(self, workspace: Path) -> None:
        _write_project(workspace, "   \n")
        assert load_custom_instructions("Be terse.", workspace, PROJECT_FILE) == "Be terse."

    def test_unreadable_project_file_skipped(self, workspace: Path) -> None:
        (workspace / PROJECT_FILE).mkdir(parents=True)
        assert load_custom_instructions("Be terse.", workspace, PROJECT_FILE) == "Be terse."
