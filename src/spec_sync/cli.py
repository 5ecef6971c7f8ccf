"""Command line interface for spec-sync."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .catalog import (
    ALL_IMPLEMENTATIONS,
    default_implementations,
    load_implementations_file,
    select_implementations,
)
from .engine import Approver, SyncEngine
from .errors import ErrorCode, SyncError
from .git import CommandRunner
from .models import SyncMode
from .runtime import LOG_LEVELS, get_log_level_default, get_sync_config, validate_repositories


def _print_payload(payload: dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2))
        return

    status = payload.get("status", "unknown").upper()
    message = payload.get("message", "")
    stream = sys.stderr if payload.get("status") == "error" else sys.stdout
    print(f"[{status}] {message}", file=stream)

    if payload.get("status") == "error":
        error_code = payload.get("error_code", "")
        suggestion = payload.get("suggestion", "")
        if error_code:
            print(f"error_code: {error_code}", file=stream)
        if suggestion:
            print(f"suggestion: {suggestion}", file=stream)
        return

    for result in payload.get("results", []):
        states = " -> ".join(result.get("states", []))
        print(f"- {result.get('implementation')}: {states}")
        if result.get("last_merge"):
            print(f"  last_merge: {result['last_merge']}")
        if result.get("new_commits") is not None:
            print(f"  new_commits: {result['new_commits']}")


def _error_payload(exc: Exception) -> dict[str, Any]:
    if isinstance(exc, SyncError):
        return exc.to_payload()
    if isinstance(exc, ValidationError):
        return {
            "status": "error",
            "error_code": ErrorCode.INVALID_INPUT.value,
            "message": "Input validation failed",
            "suggestion": "Check command arguments and constraints.",
            "details": {"errors": exc.errors(include_context=False, include_input=False)},
        }
    return {
        "status": "error",
        "error_code": ErrorCode.INTERNAL_ERROR.value,
        "message": str(exc),
        "suggestion": "Rerun with --log-level DEBUG and inspect the command trace.",
        "details": {},
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spec-sync",
        description="Merge ruby/spec changes from Ruby implementations into ruby/spec",
    )
    parser.add_argument(
        "implementations",
        nargs="+",
        help=f"'{ALL_IMPLEMENTATIONS}' or one or more implementation names",
    )
    parser.add_argument(
        "--mspec",
        action="store_true",
        help="Sync spec/mspec into ruby/mspec instead of spec/ruby into ruby/spec",
    )
    parser.add_argument(
        "--mspec-repo",
        default="",
        help="ruby/mspec checkout (default: current directory)",
    )
    parser.add_argument(
        "--rubyspec-repo",
        default="",
        help="ruby/spec checkout (default: 'rubyspec' next to the mspec checkout)",
    )
    parser.add_argument(
        "--work-dir",
        default="",
        help="Directory holding the upstream clones (default: current directory)",
    )
    parser.add_argument(
        "--implementations-file",
        default="",
        help="YAML mapping of implementation names to descriptors",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: SPEC_SYNC_LOG_LEVEL or WARNING)",
    )
    parser.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    return parser


def main(
    argv: list[str] | None = None,
    runner: CommandRunner | None = None,
    approve: Approver | None = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    as_json = bool(args.json)

    try:
        log_level = args.log_level or get_log_level_default()
    except ValueError as exc:
        parser.error(str(exc))
    logging.basicConfig(level=log_level, format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.implementations_file:
            available = load_implementations_file(Path(args.implementations_file))
        else:
            available = default_implementations()
        selected = select_implementations(list(args.implementations), available)

        config = get_sync_config(
            mode=SyncMode.MSPEC if args.mspec else SyncMode.SPECS,
            mspec_repo=args.mspec_repo or None,
            rubyspec_repo=args.rubyspec_repo or None,
            work_dir=args.work_dir or None,
        )
        validate_repositories(config)

        # Keep stdout for the JSON document; the command trace goes to stderr.
        stream = sys.stderr if as_json else None
        engine = SyncEngine(
            config,
            runner=runner or CommandRunner(stream),
            approve=approve,
            stream=stream,
        )
        results = engine.run(selected)
        response = {
            "status": "success",
            "message": f"Synced {len(results)} implementation(s)",
            "results": [result.model_dump(mode="json") for result in results],
        }
        _print_payload(response, as_json=as_json)
        return 0
    except Exception as exc:  # noqa: BLE001
        logging.getLogger(__name__).debug("sync aborted", exc_info=True)
        _print_payload(_error_payload(exc), as_json=as_json)
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
