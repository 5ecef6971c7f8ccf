"""Configured implementations and command-line selection."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .errors import ErrorCode, SyncError
from .models import Implementation

ALL_IMPLEMENTATIONS = "all"

DEFAULT_IMPLEMENTATIONS: dict[str, dict[str, Any]] = {
    "truffleruby": {
        "git": "https://github.com/oracle/truffleruby.git",
        "from_commit": "f10ab6988d",
    },
    "jruby": {
        "git": "https://github.com/jruby/jruby.git",
        "from_commit": "f10ab6988d",
    },
    "rbx": {
        "git": "https://github.com/rubinius/rubinius.git",
    },
    "mri": {
        "git": "https://github.com/ruby/ruby.git",
    },
}


def build_implementations(raw: dict[str, Any]) -> dict[str, Implementation]:
    """Validate a name -> descriptor mapping, preserving its order."""
    implementations: dict[str, Implementation] = {}
    for name, data in raw.items():
        if not isinstance(data, dict):
            raise SyncError(
                ErrorCode.INVALID_INPUT,
                f"Implementation '{name}' must be a mapping",
                "Provide at least a `git` URL for each implementation.",
            )
        try:
            implementations[str(name)] = Implementation(name=str(name), **data)
        except (TypeError, ValidationError) as exc:
            raise SyncError(
                ErrorCode.INVALID_INPUT,
                f"Invalid descriptor for implementation '{name}'",
                "Allowed keys are git, from_commit and merge_message.",
                {"error": str(exc)},
            ) from exc
    return implementations


def default_implementations() -> dict[str, Implementation]:
    return build_implementations(DEFAULT_IMPLEMENTATIONS)


def load_implementations_file(path: Path) -> dict[str, Implementation]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except OSError as exc:
        raise SyncError(
            ErrorCode.INVALID_INPUT,
            f"Unable to read implementations file {path}",
            "Ensure --implementations-file points to a readable YAML file.",
        ) from exc
    except yaml.YAMLError as exc:
        raise SyncError(
            ErrorCode.INVALID_INPUT,
            f"Implementations file {path} is not valid YAML",
            "Provide a mapping of implementation names to descriptors.",
        ) from exc

    if not isinstance(loaded, dict) or not loaded:
        raise SyncError(
            ErrorCode.INVALID_INPUT,
            f"Implementations file {path} must contain a non-empty mapping",
            "Example: `mri: {git: https://github.com/ruby/ruby.git}`.",
        )
    return build_implementations(loaded)


def select_implementations(
    selection: list[str],
    available: dict[str, Implementation],
) -> list[Implementation]:
    """Resolve command-line names to descriptors, in configuration order."""
    if selection == [ALL_IMPLEMENTATIONS]:
        return list(available.values())

    unknown = [name for name in selection if name not in available]
    if unknown or not selection:
        raise SyncError(
            ErrorCode.UNKNOWN_IMPLEMENTATION,
            f"Unknown implementation(s): {', '.join(unknown) or '(none given)'}",
            f"Choose from: {ALL_IMPLEMENTATIONS}, {', '.join(available)}.",
            {"unknown": unknown},
        )
    return [impl for name, impl in available.items() if name in selection]
