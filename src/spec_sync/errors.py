"""Domain-specific error types for spec synchronization."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Failure categories reported by spec-sync."""

    INVALID_DIRECTORY = "INVALID_DIRECTORY"
    UNKNOWN_IMPLEMENTATION = "UNKNOWN_IMPLEMENTATION"
    INVALID_INPUT = "INVALID_INPUT"
    COMMAND_FAILED = "COMMAND_FAILED"
    STALE_REBASED_BRANCH = "STALE_REBASED_BRANCH"
    STALE_LAST_MERGE = "STALE_LAST_MERGE"
    LAST_MERGE_NOT_FOUND = "LAST_MERGE_NOT_FOUND"
    UPSTREAM_MISMATCH = "UPSTREAM_MISMATCH"
    NOT_FAST_FORWARD = "NOT_FAST_FORWARD"
    INVALID_CI_CONFIG = "INVALID_CI_CONFIG"
    VERIFICATION_DECLINED = "VERIFICATION_DECLINED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class SyncError(Exception):
    """Fatal workflow error; the run stops wherever this is raised."""

    code: ErrorCode
    message: str
    suggestion: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": "error",
            "error_code": self.code.value,
            "message": self.message,
            "suggestion": self.suggestion or "",
            "details": self.details,
        }
