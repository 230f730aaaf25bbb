from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from stagesync.config import load_env_file, load_sync_config, resolve_run_inputs
from stagesync.constants import DEFAULT_CONFIG_PATH
from stagesync.extract import extract_task_ids
from stagesync.models import ConfigurationError, RunInputs, SyncConfig
from stagesync.proofhub import ProofHubClient
from stagesync.reconcile import render_summary, run_reconciliation


def _write_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _print_configuration_errors(errors: list[str]) -> None:
    print("Configuration Error:", file=sys.stderr)
    for error in errors:
        print(f"   - {error}", file=sys.stderr)
    print("\nPlease check the documentation for required configuration.", file=sys.stderr)


def _read_pr_body(args: argparse.Namespace) -> str | None:
    if getattr(args, "pr_body_file", None):
        return Path(args.pr_body_file).expanduser().read_text(encoding="utf-8")
    return getattr(args, "pr_body", None)


def _cmd_run(args: argparse.Namespace) -> int:
    if not args.no_dotenv:
        load_env_file(args.env_file)

    errors: list[str] = []
    config: SyncConfig | None = None
    inputs: RunInputs | None = None
    try:
        pr_body = _read_pr_body(args)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"stagesync run: ERROR cannot read PR body: {exc}", file=sys.stderr)
        return 1
    try:
        inputs = resolve_run_inputs(
            api_key=args.api_key,
            branch=args.branch,
            pr_body=pr_body,
            pr_number=args.pr_number,
        )
    except ConfigurationError as exc:
        errors.extend(exc.errors)
    try:
        config = load_sync_config(
            Path(args.config).expanduser(), strict_rules=not args.no_strict_rules
        )
    except ConfigurationError as exc:
        errors.extend(exc.errors)
    if errors or config is None or inputs is None:
        _print_configuration_errors(errors)
        return 1

    print("ProofHub Task Automation\n")
    client = ProofHubClient.from_config(config, inputs.api_key)
    try:
        summary = run_reconciliation(config, inputs, client, dry_run=args.dry_run)
    except ConfigurationError as exc:
        _print_configuration_errors(exc.errors)
        return 1

    if summary.task_ids:
        print("\n" + render_summary(summary))
    if args.report:
        _write_json(Path(args.report).expanduser(), summary.to_dict())
    return summary.exit_code


def _cmd_check(args: argparse.Namespace) -> int:
    config_path = Path(args.config).expanduser()
    try:
        config = load_sync_config(config_path, strict_rules=not args.no_strict_rules)
    except ConfigurationError as exc:
        _print_configuration_errors(exc.errors)
        return 1

    print("stagesync check")
    print(f"config: {config_path}")
    print(f"api_url: {config.api_url}")
    print(f"project_id: {config.project_id}")
    print(f"todo_list_id: {config.todo_list_id}")
    print("branches:")
    for branch, branch_stage in config.branches.items():
        print(f"  {branch}: {branch_stage.target_stage} ({branch_stage.target_stage_id})")
    if config.hierarchy:
        print("stage_hierarchy:")
        for name, rank in sorted(config.hierarchy.items(), key=lambda item: item[1]):
            print(f"  {rank}: {name}")
    else:
        print("stage_hierarchy: <empty; all movement allowed>")
    print(f"parent_rules_enabled: {config.parent_rules_enabled}")
    for rule in config.parent_rules:
        print(f"rule: parent in \"{rule.parent_stage}\"")
        for action in rule.actions:
            print(
                f"  - {action.condition} subtasks in \"{action.subtask_stage}\""
                f" → \"{action.move_parent_to}\""
            )
    return 0


def _cmd_extract(args: argparse.Namespace) -> int:
    try:
        pr_body = _read_pr_body(args)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"stagesync extract: ERROR {exc}", file=sys.stderr)
        return 1
    if pr_body is None:
        pr_body = sys.stdin.read()
    for task_id in extract_task_ids(pr_body):
        print(task_id)
    return 0


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the YAML or JSON config (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--no-strict-rules",
        action="store_true",
        help="Allow parent rules whose target stage has no configured stage id.",
    )


def _add_pr_body_arguments(parser: argparse.ArgumentParser) -> None:
    body = parser.add_mutually_exclusive_group()
    body.add_argument("--pr-body", default=None, help="PR description text (default: $PR_BODY)")
    body.add_argument("--pr-body-file", default=None, help="Read the PR description from a file")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sync ProofHub task stages from merged pull requests"
    )
    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Move PR tasks and reconcile their parents")
    _add_config_argument(run)
    _add_pr_body_arguments(run)
    run.add_argument("--branch", default=None, help="Target branch (default: $TARGET_BRANCH)")
    run.add_argument("--pr-number", default=None, help="PR number for display (default: $PR_NUMBER)")
    run.add_argument("--api-key", default=None, help="ProofHub API key (default: $PROOFHUB_API_KEY)")
    run.add_argument("--env-file", default=None, help="Load environment from this .env file")
    run.add_argument("--no-dotenv", action="store_true", help="Do not load a .env file")
    run.add_argument(
        "--dry-run",
        action="store_true",
        help=(
            "Fetch and evaluate tasks but do not issue stage updates; parents are "
            "evaluated as if the planned task moves had been applied."
        ),
    )
    run.add_argument("--report", default=None, help="Write a JSON run summary to this path")
    run.set_defaults(handler=_cmd_run)

    check = subparsers.add_parser("check", help="Validate the config and describe its rules")
    _add_config_argument(check)
    check.set_defaults(handler=_cmd_check)

    extract = subparsers.add_parser("extract", help="Print task ids found in a PR body")
    _add_pr_body_arguments(extract)
    extract.set_defaults(handler=_cmd_extract)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2
    return int(handler(args))
