"""Read the interpreter test matrix from the CI workflow."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml

from .errors import ErrorCode, SyncError

NUMERIC_VERSION_PATTERN = re.compile(r"^\d+\.")


def load_workflow(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise SyncError(
            ErrorCode.INVALID_CI_CONFIG,
            f"CI workflow not found: {path}",
            "The test matrix is read from the repository's CI workflow.",
        ) from exc
    except yaml.YAMLError as exc:
        raise SyncError(
            ErrorCode.INVALID_CI_CONFIG,
            f"CI workflow is not valid YAML: {path}",
        ) from exc
    if not isinstance(loaded, dict):
        raise SyncError(ErrorCode.INVALID_CI_CONFIG, f"CI workflow is empty: {path}")
    return loaded


def matrix_versions(workflow: dict[str, Any], job_name: str) -> list[str]:
    """Return `jobs.<job>.strategy.matrix.ruby` entries that are plain MRI versions."""
    node: Any = workflow
    for key in ("jobs", job_name, "strategy", "matrix", "ruby"):
        node = node.get(key) if isinstance(node, dict) else None
    if not isinstance(node, list):
        raise SyncError(
            ErrorCode.INVALID_CI_CONFIG,
            f"No ruby matrix for job '{job_name}' in the CI workflow",
            "Expected jobs.<job>.strategy.matrix.ruby to be a list.",
        )
    # Unquoted YAML numbers lose information (3.10 -> 3.1), only strings count.
    return [entry for entry in node if isinstance(entry, str) and NUMERIC_VERSION_PATTERN.match(entry)]


def version_key(version: str) -> tuple[int, ...]:
    parts: list[int] = []
    for piece in version.split("."):
        digits = re.match(r"\d+", piece)
        if not digits:
            break
        parts.append(int(digits.group()))
    return tuple(parts)


def min_max_versions(versions: list[str]) -> tuple[str, str]:
    if not versions:
        raise SyncError(
            ErrorCode.INVALID_CI_CONFIG,
            "The CI ruby matrix lists no numeric versions",
            "Add quoted versions such as '3.3' to the matrix.",
        )
    ordered = sorted(versions, key=version_key)
    return ordered[0], ordered[-1]
