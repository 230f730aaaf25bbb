from __future__ import annotations

import importlib.resources as importlib_resources
import json
import os
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from dotenv import find_dotenv, load_dotenv
from jsonschema import Draft202012Validator

from stagesync.constants import (
    DEFAULT_API_URL,
    ENV_API_KEY,
    ENV_PR_BODY,
    ENV_PR_NUMBER,
    ENV_TARGET_BRANCH,
)
from stagesync.models import (
    BranchStage,
    ConfigurationError,
    RunInputs,
    StageAction,
    StageRule,
    SyncConfig,
)
from stagesync.stages import StageDirectory, unresolvable_rule_targets


def _load_schema() -> dict[str, Any]:
    resource = importlib_resources.files("stagesync").joinpath("schemas").joinpath(
        "config.schema.json"
    )
    return json.loads(resource.read_text(encoding="utf-8"))


def _format_error_path(error_path: Iterable[Any]) -> str:
    pieces = ["$"]
    for part in error_path:
        if isinstance(part, int):
            pieces.append(f"[{part}]")
        else:
            pieces.append(f".{part}")
    return "".join(pieces)


def _schema_validate(payload: Any, *, path: Path) -> list[str]:
    validator = Draft202012Validator(_load_schema())
    failures: list[str] = []
    for error in sorted(
        validator.iter_errors(payload), key=lambda item: _format_error_path(item.path)
    ):
        location = _format_error_path(error.path)
        failures.append(f"{path} schema violation at {location}: {error.message}")
    return failures


def _load_config_payload(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(
            [
                f"config file not found: {path}",
                "create it from stagesync.example.yaml",
            ]
        )
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"error loading config {path}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"config must contain a mapping: {path}")
    return loaded


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parent_rules_enabled(value: Any) -> bool:
    # Only an explicit false disables parent rules.
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() != "false"
    return True


def _parse_branches(raw_stages: Mapping[str, Any]) -> dict[str, BranchStage]:
    branches: dict[str, BranchStage] = {}
    for branch, entry in raw_stages.items():
        entry = _as_dict(entry)
        branches[str(branch)] = BranchStage(
            target_stage=_text(entry.get("targetStage")),
            target_stage_id=_text(entry.get("targetStageId")),
        )
    return branches


def _parse_hierarchy(raw_hierarchy: Mapping[str, Any]) -> dict[str, int]:
    hierarchy: dict[str, int] = {}
    for name, rank in raw_hierarchy.items():
        try:
            hierarchy[str(name)] = int(rank)
        except (TypeError, ValueError):
            hierarchy[str(name)] = 0
    return hierarchy


def _parse_rules(raw_rules: Any) -> tuple[StageRule, ...]:
    if not isinstance(raw_rules, list):
        return ()
    rules: list[StageRule] = []
    for raw_rule in raw_rules:
        raw_rule = _as_dict(raw_rule)
        actions = tuple(
            StageAction(
                condition=_text(raw_action.get("condition")).lower(),
                subtask_stage=_text(raw_action.get("subtaskStage")),
                move_parent_to=_text(raw_action.get("moveParentTo")),
            )
            for raw_action in raw_rule.get("actions") or []
            if isinstance(raw_action, dict)
        )
        rules.append(StageRule(parent_stage=_text(raw_rule.get("parentStage")), actions=actions))
    return tuple(rules)


def build_sync_config(
    payload: Mapping[str, Any],
    *,
    source: Path = Path("<config>"),
    strict_rules: bool = True,
) -> SyncConfig:
    """Validate a parsed config mapping and freeze it into a ``SyncConfig``.

    All problems are collected and raised together as one ``ConfigurationError``.
    With ``strict_rules`` every ``moveParentTo`` must name a stage that some branch
    targets, since only branch targets carry stage ids.
    """
    errors = _schema_validate(dict(payload), path=source)
    if errors:
        raise ConfigurationError(errors)

    proofhub = _as_dict(payload.get("proofhub"))
    project_id = _text(proofhub.get("projectId"))
    todo_list_id = _text(proofhub.get("todoListId"))
    raw_stages = _as_dict(payload.get("stages"))
    if not project_id:
        errors.append(f"proofhub.projectId is required in {source}")
    if not todo_list_id:
        errors.append(f"proofhub.todoListId is required in {source}")
    if not raw_stages:
        errors.append(f"stages configuration is required in {source}")

    features = _as_dict(payload.get("features"))
    config = SyncConfig(
        api_url=_text(proofhub.get("apiUrl")) or DEFAULT_API_URL,
        project_id=project_id,
        todo_list_id=todo_list_id,
        branches=_parse_branches(raw_stages),
        hierarchy=_parse_hierarchy(_as_dict(payload.get("stageHierarchy"))),
        parent_rules=_parse_rules(payload.get("parentRules")),
        parent_rules_enabled=_parent_rules_enabled(features.get("parentRulesEnabled")),
    )

    if strict_rules and config.parent_rules_enabled:
        directory = StageDirectory.from_config(config)
        for name in unresolvable_rule_targets(config.parent_rules, directory):
            errors.append(
                f"parentRules moveParentTo '{name}' has no targetStageId; "
                "add a stages entry targeting it"
            )
    if errors:
        raise ConfigurationError(errors)
    return config


def load_sync_config(path: Path, *, strict_rules: bool = True) -> SyncConfig:
    payload = _load_config_payload(path)
    return build_sync_config(payload, source=path, strict_rules=strict_rules)


def load_env_file(env_file: str | None = None) -> bool:
    """Load ``.env`` values into ``os.environ`` without overriding existing ones."""
    if env_file:
        return load_dotenv(dotenv_path=env_file, override=False)
    discovered = find_dotenv(usecwd=True)
    if not discovered:
        return False
    return load_dotenv(dotenv_path=discovered, override=False)


def resolve_run_inputs(
    *,
    api_key: str | None = None,
    branch: str | None = None,
    pr_body: str | None = None,
    pr_number: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> RunInputs:
    """Merge explicit values over environment variables and check required ones."""
    env = os.environ if environ is None else environ
    inputs = RunInputs(
        api_key=_text(api_key if api_key is not None else env.get(ENV_API_KEY)),
        branch=_text(branch if branch is not None else env.get(ENV_TARGET_BRANCH)),
        pr_body=pr_body if pr_body is not None else env.get(ENV_PR_BODY, ""),
        pr_number=_text(pr_number if pr_number is not None else env.get(ENV_PR_NUMBER)),
    )
    errors: list[str] = []
    if not inputs.api_key:
        errors.append(f"{ENV_API_KEY} environment variable is required")
    if not inputs.branch:
        errors.append(f"{ENV_TARGET_BRANCH} environment variable is required")
    if errors:
        raise ConfigurationError(errors)
    return inputs
