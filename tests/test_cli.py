from __future__ import annotations

import json
from pathlib import Path

import pytest

from spec_sync.cli import main


def _repo_args(workspace) -> list[str]:
    return [
        "--mspec-repo",
        str(workspace.mspec),
        "--rubyspec-repo",
        str(workspace.rubyspec),
        "--work-dir",
        str(workspace.work),
    ]


def _run_cli_json(args: list[str], capsys, runner) -> dict:
    exit_code = main(args + ["--json"], runner=runner, approve=lambda: True)
    assert exit_code in (0, 1)
    output = capsys.readouterr().out
    return {"exit_code": exit_code, "payload": json.loads(output)}


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch) -> None:
    for name in ("CHECK_LAST_MERGE", "TEST_MASTER", "ONLY_FILTER", "LAST_MERGE", "SPEC_SYNC_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_cli_rejects_unknown_implementation_before_touching_repos(
    workspace, runner, capsys
) -> None:
    result = _run_cli_json(["mri", "rubinius", *_repo_args(workspace)], capsys, runner)

    assert result["exit_code"] == 1
    assert result["payload"]["status"] == "error"
    assert result["payload"]["error_code"] == "UNKNOWN_IMPLEMENTATION"
    assert runner.calls == []


def test_cli_requires_repositories(tmp_path: Path, runner, capsys) -> None:
    result = _run_cli_json(
        [
            "mri",
            "--mspec-repo",
            str(tmp_path / "mspec"),
            "--work-dir",
            str(tmp_path),
        ],
        capsys,
        runner,
    )

    assert result["exit_code"] == 1
    assert result["payload"]["error_code"] == "INVALID_DIRECTORY"
    assert runner.calls == []


def test_cli_only_filter_summary(workspace, runner, capsys, monkeypatch) -> None:
    monkeypatch.setenv("ONLY_FILTER", "true")

    exit_code = main(["mri", *_repo_args(workspace)], runner=runner)

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "[SUCCESS] Synced 1 implementation(s)" in output
    assert "- mri: needs-sync -> needs-filter -> done" in output
    assert not any(args[1] in ("rebase", "merge") for args in runner.commands())


def test_cli_json_success_keeps_trace_off_stdout(workspace, runner, capsys, monkeypatch) -> None:
    monkeypatch.setenv("ONLY_FILTER", "true")

    result = _run_cli_json(["mri", *_repo_args(workspace)], capsys, runner)

    assert result["exit_code"] == 0
    assert result["payload"]["status"] == "success"
    assert result["payload"]["results"][0]["implementation"] == "mri"
    assert result["payload"]["results"][0]["states"] == ["needs-sync", "needs-filter", "done"]


def test_cli_json_sends_progress_to_stderr(workspace, runner, capsys, monkeypatch) -> None:
    monkeypatch.setenv("ONLY_FILTER", "true")

    assert main(["mri", "--json", *_repo_args(workspace)], runner=runner) == 0

    captured = capsys.readouterr()
    assert json.loads(captured.out)["status"] == "success"
    assert "ruby/ruby: " in captured.err


def test_cli_all_selects_every_implementation(workspace, runner, capsys, monkeypatch) -> None:
    monkeypatch.setenv("ONLY_FILTER", "true")

    assert main(["all", *_repo_args(workspace)], runner=runner) == 0

    output = capsys.readouterr().out
    assert "[SUCCESS] Synced 4 implementation(s)" in output
    for name in ("truffleruby", "jruby", "rbx", "mri"):
        assert f"- {name}: " in output


def test_cli_errors_are_reported_on_stderr(workspace, runner, capsys) -> None:
    exit_code = main(["nope", *_repo_args(workspace)], runner=runner)

    assert exit_code == 1
    captured = capsys.readouterr()
    assert "[ERROR] Unknown implementation(s): nope" in captured.err
    assert "error_code: UNKNOWN_IMPLEMENTATION" in captured.err


def test_cli_implementations_file(workspace, runner, capsys, monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ONLY_FILTER", "true")
    impls = tmp_path / "impls.yaml"
    impls.write_text("natalie:\n  git: https://github.com/natalie-lang/natalie.git\n", encoding="utf-8")

    exit_code = main(
        ["natalie", "--implementations-file", str(impls), *_repo_args(workspace)],
        runner=runner,
    )

    assert exit_code == 0
    assert ("git", "clone", "https://github.com/natalie-lang/natalie.git") in runner.commands()
    capsys.readouterr()

    bad = _run_cli_json(
        ["mri", "--implementations-file", str(tmp_path / "missing.yaml"), *_repo_args(workspace)],
        capsys,
        runner,
    )
    assert bad["payload"]["error_code"] == "INVALID_INPUT"
