"""Runtime configuration helpers."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .constants import DEFAULT_SHELL, RUBYSPEC_DIR_NAME
from .errors import ErrorCode, SyncError
from .models import SyncMode

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class SyncConfig:
    """Settings resolved once at process start and shared by every step."""

    mode: SyncMode
    mspec_repo: Path
    rubyspec_repo: Path
    work_dir: Path
    check_last_merge: bool = True
    test_master: bool = True
    only_filter: bool = False
    last_merge: str | None = None
    shell: str = DEFAULT_SHELL
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def source_repo(self) -> Path:
        """Repository receiving the filtered history."""
        return self.mspec_repo if self.mode == SyncMode.MSPEC else self.rubyspec_repo


def get_sync_config(
    mode: SyncMode = SyncMode.SPECS,
    mspec_repo: str | Path | None = None,
    rubyspec_repo: str | Path | None = None,
    work_dir: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> SyncConfig:
    """Build the run configuration from arguments and environment variables.

    Flags keep their literal semantics: `CHECK_LAST_MERGE` and `TEST_MASTER`
    are only disabled by the exact string ``false`` and `ONLY_FILTER` is only
    enabled by the exact string ``true``.
    """
    source = os.environ if env is None else env

    mspec_path = Path(mspec_repo).expanduser().resolve() if mspec_repo else Path.cwd().resolve()
    if rubyspec_repo:
        rubyspec_path = Path(rubyspec_repo).expanduser().resolve()
    else:
        rubyspec_path = mspec_path.parent / RUBYSPEC_DIR_NAME
    work_path = Path(work_dir).expanduser().resolve() if work_dir else Path.cwd().resolve()

    last_merge = source.get("LAST_MERGE", "").strip() or None
    return SyncConfig(
        mode=mode,
        mspec_repo=mspec_path,
        rubyspec_repo=rubyspec_path,
        work_dir=work_path,
        check_last_merge=mode != SyncMode.MSPEC and source.get("CHECK_LAST_MERGE") != "false",
        test_master=source.get("TEST_MASTER") != "false",
        only_filter=source.get("ONLY_FILTER") == "true",
        last_merge=last_merge,
        shell=source.get("SHELL", "").strip() or DEFAULT_SHELL,
        now=now or datetime.now(timezone.utc),
    )


def validate_repositories(config: SyncConfig) -> None:
    """Fail unless both the mspec and rubyspec checkouts are git working trees."""
    for label, path in (("mspec", config.mspec_repo), ("rubyspec", config.rubyspec_repo)):
        if not path.is_dir():
            raise SyncError(
                ErrorCode.INVALID_DIRECTORY,
                f"{label} repository not found: {path}",
                f"Clone ruby/{label.replace('rubyspec', 'spec')} there or pass --{label}-repo.",
                {"path": str(path)},
            )
        if not (path / ".git").exists():
            raise SyncError(
                ErrorCode.INVALID_DIRECTORY,
                f"{label} repository is not a git working tree: {path}",
                "Point the option at a git checkout.",
                {"path": str(path)},
            )
    if not config.work_dir.is_dir():
        raise SyncError(
            ErrorCode.INVALID_DIRECTORY,
            f"Work directory not found: {config.work_dir}",
            "Create it or pass an existing directory with --work-dir.",
            {"path": str(config.work_dir)},
        )


def get_log_level_default(env: Mapping[str, str] | None = None) -> str:
    source = os.environ if env is None else env
    level = source.get("SPEC_SYNC_LOG_LEVEL", "WARNING").strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"SPEC_SYNC_LOG_LEVEL must be one of: {', '.join(LOG_LEVELS)}.")
    return level
