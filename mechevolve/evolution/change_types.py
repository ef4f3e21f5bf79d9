"""Derive a change type from the editing tool and the command it ran."""

from __future__ import annotations

import os
import re

FILE_CREATE = "file-create"
FILE_MODIFY = "file-modify"
TEST_RUN = "test-run"
BUILD_RUN = "build-run"
LINT_RUN = "lint-run"
COMMAND_RUN = "command-run"

_EDIT_TOOLS = {"Edit", "MultiEdit", "NotebookEdit"}

# Checked in order: "npm run build && npm test" counts as a test run.
_COMMAND_RULES: list[tuple[str, re.Pattern[str]]] = [
    (TEST_RUN, re.compile(r"\b(test|tests|pytest|jest|vitest|mocha|unittest|tox)\b")),
    (LINT_RUN, re.compile(r"\b(lint|eslint|ruff|flake8|pylint|mypy|prettier|black|tsc)\b")),
    (BUILD_RUN, re.compile(r"\b(build|compile|make|webpack|vite|cargo build|go build)\b")),
]


def classify_command(command: str) -> str:
    command = command.lower()
    for change_type, pattern in _COMMAND_RULES:
        if pattern.search(command):
            return change_type
    return COMMAND_RUN


def derive_change_type(
    tool: str,
    command: str = "",
    file_path: str = "",
    file_exists: bool | None = None,
) -> str:
    """Map a tool invocation onto one of the known change types.

    ``Write`` creates a file unless the file is already there; when
    ``file_exists`` is not given it is checked on disk (a missing path
    counts as a creation).
    """
    if tool == "Write":
        if file_exists is None:
            file_exists = bool(file_path) and os.path.exists(file_path)
        return FILE_MODIFY if file_exists else FILE_CREATE
    if tool in _EDIT_TOOLS:
        return FILE_MODIFY
    if tool == "Bash":
        return classify_command(command)
    return FILE_MODIFY
