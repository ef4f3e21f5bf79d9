"""Tests for change-type derivation."""

import pytest

from mechevolve.evolution.change_types import (
    BUILD_RUN,
    COMMAND_RUN,
    FILE_CREATE,
    FILE_MODIFY,
    LINT_RUN,
    TEST_RUN,
    classify_command,
    derive_change_type,
)


@pytest.mark.parametrize("command,expected", [
    ("npm test", TEST_RUN),
    ("pytest -q tests/", TEST_RUN),
    ("npx eslint src", LINT_RUN),
    ("ruff check .", LINT_RUN),
    ("npm run build", BUILD_RUN),
    ("cargo build --release", BUILD_RUN),
    ("npm run build && npm test", TEST_RUN),
    ("ls -la", COMMAND_RUN),
])
def test_classify_command(command, expected):
    assert classify_command(command) == expected


def test_write_depends_on_existing_file(tmp_path):
    existing = tmp_path / "a.py"
    existing.write_text("x = 1\n")

    assert derive_change_type("Write", file_path=str(existing)) == FILE_MODIFY
    assert derive_change_type("Write", file_path=str(tmp_path / "new.py")) == FILE_CREATE
    assert derive_change_type("Write", file_exists=True) == FILE_MODIFY
    assert derive_change_type("Write", file_exists=False) == FILE_CREATE


def test_edit_tools_modify():
    assert derive_change_type("Edit") == FILE_MODIFY
    assert derive_change_type("MultiEdit") == FILE_MODIFY


def test_bash_uses_command():
    assert derive_change_type("Bash", "pytest") == TEST_RUN
    assert derive_change_type("Bash", "echo hi") == COMMAND_RUN


def test_unknown_tool_defaults_to_modify():
    assert derive_change_type("Telepathy") == FILE_MODIFY
    assert derive_change_type("") == FILE_MODIFY
