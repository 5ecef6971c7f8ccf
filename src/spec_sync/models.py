"""Pydantic models for implementation descriptors and sync results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_MERGE_MESSAGE, MSPEC_PREFIX, REBASED_SUFFIX, SPECS_PREFIX


class SyncMode(str, Enum):
    SPECS = "specs"
    MSPEC = "mspec"


class SyncState(str, Enum):
    NEEDS_SYNC = "needs-sync"
    NEEDS_FILTER = "needs-filter"
    NEEDS_REBASE = "needs-rebase"
    REBASED = "rebased"
    READY_FOR_TEST = "ready-for-test"
    READY_TO_INTEGRATE = "ready-to-integrate"
    DONE = "done"


class Implementation(BaseModel):
    """An upstream project vendoring a copy of the spec corpus."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-z0-9_-]+$")
    git: str = Field(..., min_length=1)
    from_commit: str | None = None
    merge_message: str | None = None

    @field_validator("git")
    @classmethod
    def _git_url_has_repo_name(cls, value: str) -> str:
        stripped = value.strip()
        if not PurePosixPath(urlparse(stripped).path).stem:
            raise ValueError("git must be a repository URL ending with the repository name")
        return stripped

    @field_validator("from_commit", "merge_message")
    @classmethod
    def _blank_as_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @property
    def repo_name(self) -> str:
        return PurePosixPath(urlparse(self.git).path).name.removesuffix(".git")

    @property
    def repo_org(self) -> str:
        return PurePosixPath(urlparse(self.git).path).parent.name

    @property
    def rebased_branch(self) -> str:
        return f"{self.name}{REBASED_SUFFIX}"

    def from_commit_range(self) -> str | None:
        """Revision range bounding the subdirectory filter, if any."""
        if self.from_commit:
            return f"{self.from_commit}..."
        return None

    def last_merge_message(self, mode: SyncMode) -> str:
        message = self.merge_message or DEFAULT_MERGE_MESSAGE
        if mode == SyncMode.MSPEC:
            message = message.replace("ruby/spec", "ruby/mspec")
        return message

    def prefix(self, mode: SyncMode) -> str:
        return MSPEC_PREFIX if mode == SyncMode.MSPEC else SPECS_PREFIX


class RepositoryInspection(BaseModel):
    """Read-only repository facts gathered once before any step mutates state."""

    filter_branch: str
    filter_branch_exists: bool = False
    rebased_branch_exists: bool = False
    rebased_last_commit: datetime | None = None


class SyncResult(BaseModel):
    implementation: str
    filter_branch: str = ""
    states: list[SyncState] = Field(default_factory=list)
    new_commits: bool | None = None
    last_merge: str = ""
    integrated: bool = False
