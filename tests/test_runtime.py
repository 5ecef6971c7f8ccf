from __future__ import annotations

from pathlib import Path

import pytest

from spec_sync.errors import ErrorCode, SyncError
from spec_sync.models import SyncMode
from spec_sync.runtime import get_log_level_default, get_sync_config, validate_repositories


def test_flags_default_when_environment_is_empty(tmp_path: Path) -> None:
    config = get_sync_config(mspec_repo=tmp_path / "mspec", env={})

    assert config.check_last_merge is True
    assert config.test_master is True
    assert config.only_filter is False
    assert config.last_merge is None
    assert config.shell == "/bin/sh"
    assert config.rubyspec_repo == config.mspec_repo.parent / "rubyspec"
    assert config.source_repo == config.rubyspec_repo


def test_flags_only_react_to_literal_values(tmp_path: Path) -> None:
    loose = get_sync_config(
        mspec_repo=tmp_path,
        env={"CHECK_LAST_MERGE": "no", "TEST_MASTER": "0", "ONLY_FILTER": "1"},
    )
    assert loose.check_last_merge is True
    assert loose.test_master is True
    assert loose.only_filter is False

    strict = get_sync_config(
        mspec_repo=tmp_path,
        env={
            "CHECK_LAST_MERGE": "false",
            "TEST_MASTER": "false",
            "ONLY_FILTER": "true",
            "LAST_MERGE": " abc123 ",
            "SHELL": "/bin/bash",
        },
    )
    assert strict.check_last_merge is False
    assert strict.test_master is False
    assert strict.only_filter is True
    assert strict.last_merge == "abc123"
    assert strict.shell == "/bin/bash"


def test_mspec_mode_disables_last_merge_check(tmp_path: Path) -> None:
    config = get_sync_config(mode=SyncMode.MSPEC, mspec_repo=tmp_path, env={})

    assert config.check_last_merge is False
    assert config.source_repo == config.mspec_repo


def test_validate_repositories_requires_git_checkouts(workspace) -> None:
    config = get_sync_config(
        mspec_repo=workspace.mspec,
        rubyspec_repo=workspace.rubyspec,
        work_dir=workspace.work,
        env={},
    )
    validate_repositories(config)

    (workspace.rubyspec / ".git").rmdir()
    with pytest.raises(SyncError) as exc_info:
        validate_repositories(config)
    assert exc_info.value.code == ErrorCode.INVALID_DIRECTORY
    assert "rubyspec" in exc_info.value.message


def test_validate_repositories_requires_existing_mspec(tmp_path: Path) -> None:
    config = get_sync_config(mspec_repo=tmp_path / "missing", work_dir=tmp_path, env={})

    with pytest.raises(SyncError) as exc_info:
        validate_repositories(config)

    assert exc_info.value.code == ErrorCode.INVALID_DIRECTORY
    assert exc_info.value.details["path"].endswith("missing")


def test_log_level_default() -> None:
    assert get_log_level_default({}) == "WARNING"
    assert get_log_level_default({"SPEC_SYNC_LOG_LEVEL": "debug"}) == "DEBUG"
    with pytest.raises(ValueError):
        get_log_level_default({"SPEC_SYNC_LOG_LEVEL": "chatty"})
