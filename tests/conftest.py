from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import pytest

from spec_sync.errors import ErrorCode, SyncError


class FakeRunner:
    """Records commands instead of running them; outputs are scripted per argv."""

    def __init__(self) -> None:
        self.calls: list[tuple[Path, tuple[str, ...]]] = []
        self.outputs: dict[tuple[str, ...], str] = {}
        self.returncodes: dict[tuple[str, ...], int] = {}
        self.envs: dict[tuple[str, ...], dict[str, str]] = {}

    def run(
        self,
        args: Sequence[str],
        cwd: Path,
        check: bool = True,
        env: Mapping[str, str] | None = None,
    ) -> int:
        key = tuple(args)
        self.calls.append((Path(cwd), key))
        if env:
            self.envs[key] = dict(env)
        code = self.returncodes.get(key, 0)
        if check and code != 0:
            raise SyncError(ErrorCode.COMMAND_FAILED, f"{' '.join(args)} failed")
        return code

    def capture(self, args: Sequence[str], cwd: Path) -> str:
        key = tuple(args)
        self.calls.append((Path(cwd), key))
        return self.outputs.get(key, "")

    def commands(self, cwd: Path | None = None) -> list[tuple[str, ...]]:
        return [args for call_cwd, args in self.calls if cwd is None or call_cwd == cwd]


@dataclass
class Workspace:
    mspec: Path
    rubyspec: Path
    work: Path


@pytest.fixture()
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def workspace(tmp_path: Path) -> Workspace:
    mspec = tmp_path / "mspec"
    rubyspec = tmp_path / "rubyspec"
    work = tmp_path / "work"
    for path in (mspec / ".git", rubyspec / ".git", work):
        path.mkdir(parents=True)
    return Workspace(mspec=mspec, rubyspec=rubyspec, work=work)
