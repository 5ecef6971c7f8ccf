"""Process execution and thin git helpers used by the sync engine."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

from .constants import MASTER_BRANCH
from .errors import ErrorCode, SyncError

logger = logging.getLogger(__name__)


class CommandRunner:
    """Run external commands synchronously, echoing each one first.

    With a `stream`, the echo and the child processes' standard output go there
    instead of stdout.
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self.stream = stream

    def run(
        self,
        args: Sequence[str],
        cwd: Path,
        check: bool = True,
        env: Mapping[str, str] | None = None,
    ) -> int:
        """Run and return the exit status."""
        print(" ".join(args), file=self.stream or sys.stdout, flush=True)
        logger.debug("run cwd=%s args=%s", cwd, list(args))
        merged_env = {**os.environ, **env} if env else None
        try:
            completed = subprocess.run(
                list(args), cwd=str(cwd), env=merged_env, stdout=self.stream, check=False
            )
        except OSError as exc:
            raise SyncError(
                ErrorCode.COMMAND_FAILED,
                f"Unable to start `{args[0]}`: {exc}",
                "Ensure the program is installed and on PATH.",
                {"args": list(args), "cwd": str(cwd)},
            ) from exc
        if check and completed.returncode != 0:
            raise SyncError(
                ErrorCode.COMMAND_FAILED,
                f"`{' '.join(args)}` exited with status {completed.returncode}",
                "Inspect the command output above and fix the repository state manually.",
                {"args": list(args), "cwd": str(cwd), "returncode": completed.returncode},
            )
        return completed.returncode

    def capture(self, args: Sequence[str], cwd: Path) -> str:
        """Run quietly and return standard output."""
        logger.debug("capture cwd=%s args=%s", cwd, list(args))
        try:
            completed = subprocess.run(
                list(args), cwd=str(cwd), capture_output=True, text=True, check=False
            )
        except OSError as exc:
            raise SyncError(
                ErrorCode.COMMAND_FAILED,
                f"Unable to start `{args[0]}`: {exc}",
                "Ensure the program is installed and on PATH.",
                {"args": list(args), "cwd": str(cwd)},
            ) from exc
        if completed.returncode != 0:
            raise SyncError(
                ErrorCode.COMMAND_FAILED,
                f"`{' '.join(args)}` exited with status {completed.returncode}",
                completed.stderr.strip() or None,
                {"args": list(args), "cwd": str(cwd), "returncode": completed.returncode},
            )
        return completed.stdout


class GitRepository:
    """A local working tree operated on through a command runner."""

    def __init__(self, path: Path, runner: CommandRunner) -> None:
        self.path = path
        self.runner = runner

    def git(self, *args: str, check: bool = True, env: Mapping[str, str] | None = None) -> int:
        return self.runner.run(["git", *args], cwd=self.path, check=check, env=env)

    def read(self, *args: str) -> str:
        return self.runner.capture(["git", *args], cwd=self.path)

    def branch_exists(self, name: str) -> bool:
        listing = self.read("branch", "--list", name)
        branches = [line.lstrip("*+ ").strip() for line in listing.splitlines()]
        return name in branches

    def checkout(self, ref: str) -> None:
        self.git("checkout", ref)

    def update_master(self) -> None:
        self.checkout(MASTER_BRANCH)
        self.git("pull")

    def commit_info(self, ref: str) -> tuple[str, datetime] | None:
        """Return (sha, committer time) of `ref`, or None when it names nothing."""
        return _parse_commit_line(self.read("log", "-n", "1", "--format=%H %ct", ref))

    def find_commit(self, grep: str) -> tuple[str, datetime] | None:
        """Most recent commit on HEAD whose message matches `grep`."""
        return _parse_commit_line(self.read("log", f"--grep={grep}", "-n", "1", "--format=%H %ct"))

    def last_commit_time(self, ref: str) -> datetime:
        timestamp = self.read("log", "-n", "1", "--format=%ct", ref).strip()
        return _from_timestamp(timestamp)

    def subject(self, ref: str) -> str:
        return self.read("log", "-n", "1", "--format=%s", ref).strip()

    def diff_output(self, base: str, other: str) -> str:
        return self.read("diff", base, other)


def _parse_commit_line(line: str) -> tuple[str, datetime] | None:
    parts = line.split()
    if len(parts) < 2:
        return None
    return parts[0], _from_timestamp(parts[1])


def _from_timestamp(value: str) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except ValueError as exc:
        raise SyncError(
            ErrorCode.INTERNAL_ERROR,
            f"Unexpected commit timestamp from git: {value!r}",
        ) from exc
