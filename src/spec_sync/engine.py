"""Core sync engine: filter, rebase, validate and integrate upstream specs."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, TextIO

from .ci import load_workflow, matrix_versions, min_max_versions
from .constants import (
    CI_EXCLUDED_PATHSPEC,
    CI_WORKFLOW_PATH,
    MASTER_BRANCH,
    MASTER_RUBY,
    MAX_LAST_MERGE_AGE_DAYS,
    MAX_REBASED_BRANCH_AGE_DAYS,
    MSPEC_CI_JOB,
    MSPEC_TEST_COMMAND,
    SECONDS_PER_DAY,
    SPECS_CI_JOB,
    SPECS_TEST_COMMAND,
)
from .errors import ErrorCode, SyncError
from .git import CommandRunner, GitRepository
from .models import Implementation, RepositoryInspection, SyncMode, SyncResult, SyncState
from .runtime import SyncConfig

logger = logging.getLogger(__name__)

Approver = Callable[[], bool]


def prompt_approval(stream: TextIO | None = None) -> bool:
    """Block until the operator presses enter; false on end of input."""
    print("Press enter >", end=" ", file=stream or sys.stdout, flush=True)
    return bool(sys.stdin.readline())


@dataclass
class _Run:
    impl: Implementation
    inspection: RepositoryInspection
    result: SyncResult


class SyncEngine:
    """Runs the sync workflow for one implementation at a time.

    Each implementation is inspected once (read-only) and then driven through
    `SyncState` transitions until it reaches ``DONE``. Any failure raises
    `SyncError` and ends the whole run; nothing is rolled back.
    """

    def __init__(
        self,
        config: SyncConfig,
        runner: CommandRunner | None = None,
        approve: Approver | None = None,
        stream: TextIO | None = None,
    ) -> None:
        self.config = config
        self.stream = stream
        self.runner = runner or CommandRunner(stream)
        self.approve = approve or (lambda: prompt_approval(self.stream))
        self.source = GitRepository(config.source_repo, self.runner)
        self._handlers: dict[SyncState, Callable[[_Run], SyncState]] = {
            SyncState.NEEDS_SYNC: self._on_needs_sync,
            SyncState.NEEDS_FILTER: self._on_needs_filter,
            SyncState.NEEDS_REBASE: self._on_needs_rebase,
            SyncState.REBASED: self._on_rebased,
            SyncState.READY_FOR_TEST: self._on_ready_for_test,
            SyncState.READY_TO_INTEGRATE: self._on_ready_to_integrate,
        }

    @property
    def mspec(self) -> bool:
        return self.config.mode == SyncMode.MSPEC

    def run(self, implementations: list[Implementation]) -> list[SyncResult]:
        return [self.sync_implementation(impl) for impl in implementations]

    def sync_implementation(self, impl: Implementation) -> SyncResult:
        inspection = self.inspect(impl)
        if not self.config.only_filter:
            self._check_rebased_branch_age(impl, inspection)

        run = _Run(
            impl=impl,
            inspection=inspection,
            result=SyncResult(implementation=impl.name, filter_branch=inspection.filter_branch),
        )
        state = SyncState.NEEDS_SYNC
        while state != SyncState.DONE:
            run.result.states.append(state)
            logger.info("%s: %s", impl.name, state.value)
            state = self._handlers[state](run)
        run.result.states.append(SyncState.DONE)
        return run.result

    def inspect(self, impl: Implementation) -> RepositoryInspection:
        """Gather branch facts without touching any working tree."""
        filter_branch = self.filter_branch_name()
        upstream_path = self.upstream_path(impl)
        filter_branch_exists = upstream_path.is_dir() and GitRepository(
            upstream_path, self.runner
        ).branch_exists(filter_branch)

        rebased_exists = False
        rebased_last_commit: datetime | None = None
        if not self.config.only_filter:
            rebased_exists = self.source.branch_exists(impl.rebased_branch)
            if rebased_exists:
                rebased_last_commit = self.source.last_commit_time(impl.rebased_branch)

        return RepositoryInspection(
            filter_branch=filter_branch,
            filter_branch_exists=filter_branch_exists,
            rebased_branch_exists=rebased_exists,
            rebased_last_commit=rebased_last_commit,
        )

    def filter_branch_name(self) -> str:
        return f"{self.config.mode.value}-{self.config.now.astimezone():%Y-%m-%d}"

    def upstream_path(self, impl: Implementation) -> Path:
        return self.config.work_dir / impl.repo_name

    def update_repo(self, impl: Implementation) -> None:
        """Clone the upstream repository if needed and pull its master."""
        path = self.upstream_path(impl)
        if not path.is_dir():
            self.runner.run(["git", "clone", impl.git], cwd=self.config.work_dir)
        self._say(f"{impl.repo_org}/{impl.repo_name}: {path}")
        GitRepository(path, self.runner).update_master()

    def filter_commits(self, impl: Implementation, branch: str) -> None:
        """Rewrite upstream history down to the spec subdirectory and push it."""
        upstream = GitRepository(self.upstream_path(impl), self.runner)
        upstream.git("checkout", "-b", branch)
        args = ["filter-branch", "-f", "--subdirectory-filter", impl.prefix(self.config.mode)]
        commit_range = impl.from_commit_range()
        if commit_range:
            args.append(commit_range)
        upstream.git(*args, env={"FILTER_BRANCH_SQUELCH_WARNING": "1"})
        upstream.git("push", "-f", str(self.config.source_repo), f"{branch}:{impl.name}")

    def rebase_commits(self, impl: Implementation) -> str:
        """Replay commits after the last merge onto master; return the merge sha."""
        self.source.checkout(impl.name)
        last_merge, committed_at = self.locate_last_merge(impl)
        self._say(f"Last merge is {last_merge}")

        days_since_last_merge = self._days_since(committed_at)
        if self.config.check_last_merge and days_since_last_merge > MAX_LAST_MERGE_AGE_DAYS:
            raise SyncError(
                ErrorCode.STALE_LAST_MERGE,
                f"{int(days_since_last_merge)} days since last merge, probably wrong commit",
                "Set LAST_MERGE to the right commit or CHECK_LAST_MERGE=false.",
                {"last_merge": last_merge},
            )

        self._say("Checking if the last merge is consistent with upstream files")
        self.verify_last_merge(last_merge)

        self._say("Rebasing...")
        self.source.git("checkout", "-b", impl.rebased_branch, impl.name)
        self.source.git("rebase", "--onto", MASTER_BRANCH, last_merge)
        return last_merge

    def locate_last_merge(self, impl: Implementation) -> tuple[str, datetime]:
        if self.config.last_merge:
            try:
                located = self.source.commit_info(self.config.last_merge)
            except SyncError as exc:
                raise SyncError(
                    ErrorCode.LAST_MERGE_NOT_FOUND,
                    f"LAST_MERGE={self.config.last_merge} does not name a commit",
                    "Unset LAST_MERGE or point it at an existing commit.",
                ) from exc
        else:
            located = self.source.find_commit(f"^{impl.last_merge_message(self.config.mode)}")
        if located is None:
            raise SyncError(
                ErrorCode.LAST_MERGE_NOT_FOUND,
                "Could not find last merge",
                "Set LAST_MERGE to the commit of the previous sync.",
                {"branch": impl.name},
            )
        return located

    def verify_last_merge(self, last_merge: str) -> None:
        """The merge tree must equal the upstream commit named after '@' in its subject."""
        subject = self.source.subject(last_merge)
        _, separator, upstream_commit = subject.partition("@")
        upstream_commit = upstream_commit.strip()
        if not separator or not upstream_commit:
            raise SyncError(
                ErrorCode.UPSTREAM_MISMATCH,
                f"Last merge {last_merge} does not record an upstream commit",
                "The merge subject must end with @<commit>.",
                {"subject": subject},
            )

        self.source.checkout(last_merge)
        returncode = self.source.git(
            "diff", "--exit-code", upstream_commit, "--", CI_EXCLUDED_PATHSPEC, check=False
        )
        if returncode != 0:
            raise SyncError(
                ErrorCode.UPSTREAM_MISMATCH,
                f"Last merge {last_merge} differs from upstream {upstream_commit}",
                "The located commit is probably wrong; set LAST_MERGE explicitly.",
                {"last_merge": last_merge, "upstream": upstream_commit, "returncode": returncode},
            )

    def has_new_commits(self, impl: Implementation) -> bool:
        return bool(self.source.diff_output(MASTER_BRANCH, impl.rebased_branch))

    def test_new_specs(self) -> list[str]:
        """Run the suite under the oldest and newest CI rubies (and ruby-master)."""
        workflow = load_workflow(self.config.source_repo / CI_WORKFLOW_PATH)
        job_name = MSPEC_CI_JOB if self.mspec else SPECS_CI_JOB
        min_version, max_version = min_max_versions(matrix_versions(workflow, job_name))
        test_command = MSPEC_TEST_COMMAND if self.mspec else SPECS_TEST_COMMAND

        versions = list(dict.fromkeys([min_version, max_version]))
        if self.config.test_master:
            versions.append(MASTER_RUBY)
        for version in versions:
            command = f"chruby {version} && {test_command}"
            self.runner.run([self.config.shell, "-c", command], cwd=self.config.source_repo)
        return versions

    def verify_commits(self, impl: Implementation) -> None:
        self._say()
        self._say("Manually check commit messages:")
        self.source.git("log", f"{MASTER_BRANCH}...", check=False)
        if not self.approve():
            raise SyncError(
                ErrorCode.VERIFICATION_DECLINED,
                f"Commit review for {impl.rebased_branch} was not confirmed",
                f"Fix the commits on {impl.rebased_branch} and rerun.",
            )

    def fast_forward_master(self, impl: Implementation) -> None:
        self.source.checkout(MASTER_BRANCH)
        if self.source.git("merge", "--ff-only", impl.rebased_branch, check=False) != 0:
            raise SyncError(
                ErrorCode.NOT_FAST_FORWARD,
                f"{impl.rebased_branch} cannot be fast-forwarded into {MASTER_BRANCH}",
                f"Delete {impl.rebased_branch} and rerun to rebase again.",
            )
        self.source.git("branch", "--delete", impl.rebased_branch)

    def check_ci(self) -> None:
        repo = "mspec" if self.mspec else "spec"
        self._say()
        self._say("  Push to master, and check that the CI passes:")
        self._say(f"    https://github.com/ruby/{repo}/commits/master")
        self._say()

    def _check_rebased_branch_age(
        self, impl: Implementation, inspection: RepositoryInspection
    ) -> None:
        if not inspection.rebased_branch_exists or inspection.rebased_last_commit is None:
            return
        if self._days_since(inspection.rebased_last_commit) > MAX_REBASED_BRANCH_AGE_DAYS:
            raise SyncError(
                ErrorCode.STALE_REBASED_BRANCH,
                f"{impl.rebased_branch} exists but last commit is old "
                f"({inspection.rebased_last_commit.isoformat()})",
                "Delete the branch if it was merged.",
                {"branch": impl.rebased_branch},
            )

    def _say(self, *values: object) -> None:
        print(*values, file=self.stream or sys.stdout, flush=True)

    def _days_since(self, moment: datetime) -> float:
        return (self.config.now - moment).total_seconds() / SECONDS_PER_DAY

    def _after_filter(self, run: _Run) -> SyncState:
        if self.config.only_filter:
            return SyncState.DONE
        if run.inspection.rebased_branch_exists:
            return SyncState.REBASED
        return SyncState.NEEDS_REBASE

    def _after_rebase(self, run: _Run) -> SyncState:
        run.result.new_commits = self.has_new_commits(run.impl)
        if run.result.new_commits:
            return SyncState.READY_FOR_TEST
        logger.warning("%s: no new commits", run.impl.name)
        return SyncState.READY_TO_INTEGRATE

    def _on_needs_sync(self, run: _Run) -> SyncState:
        self.update_repo(run.impl)
        if run.inspection.filter_branch_exists:
            return self._after_filter(run)
        return SyncState.NEEDS_FILTER

    def _on_needs_filter(self, run: _Run) -> SyncState:
        self.filter_commits(run.impl, run.inspection.filter_branch)
        return self._after_filter(run)

    def _on_needs_rebase(self, run: _Run) -> SyncState:
        self.source.update_master()
        run.result.last_merge = self.rebase_commits(run.impl)
        return self._after_rebase(run)

    def _on_rebased(self, run: _Run) -> SyncState:
        self.source.update_master()
        logger.warning(
            "%s already exists, last commit on %s, assuming it correct",
            run.impl.rebased_branch,
            run.inspection.rebased_last_commit,
        )
        self.source.checkout(run.impl.rebased_branch)
        return self._after_rebase(run)

    def _on_ready_for_test(self, run: _Run) -> SyncState:
        self.test_new_specs()
        self.verify_commits(run.impl)
        return SyncState.READY_TO_INTEGRATE

    def _on_ready_to_integrate(self, run: _Run) -> SyncState:
        self.fast_forward_master(run.impl)
        run.result.integrated = True
        if run.result.new_commits:
            self.check_ci()
        return SyncState.DONE
