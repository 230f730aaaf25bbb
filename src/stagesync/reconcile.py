"""Reconciliation run: direct task updates followed by parent re-evaluation.

Phase 1 moves every task named in the PR body to the branch's target stage and
collects the distinct parents of those tasks.  Phase 2 starts only after phase 1
has finished; each parent is re-evaluated against the configured parent rules
and moved forward when a rule fires.  A failing remote call only fails its own
item.
"""

from __future__ import annotations

import sys
from typing import Mapping

from stagesync.constants import DIRECT_UPDATE_REASON, SUMMARY_RULE
from stagesync.extract import extract_task_ids
from stagesync.models import (
    BranchStage,
    ConfigurationError,
    ParentResult,
    RemoteCallError,
    RunInputs,
    RunSummary,
    SyncConfig,
    TaskResult,
)
from stagesync.proofhub import TaskClient
from stagesync.stages import StageDirectory, evaluate_parent_rules


def _error(msg: str) -> None:
    print(msg, file=sys.stderr)


def _update_stage(
    client: TaskClient,
    task_id: str,
    stage_id: str,
    stage_name: str,
    reason: str,
    *,
    dry_run: bool,
) -> str:
    """Issue one stage update; return an error message or "" on success."""
    suffix = f" ({reason})" if reason else ""
    if dry_run:
        print(f"[dry-run] would move task #{task_id} → \"{stage_name}\"{suffix}")
        return ""
    try:
        client.update_task_stage(task_id, stage_id)
    except RemoteCallError as exc:
        _error(f"Failed to update task #{task_id}: {exc}")
        return str(exc)
    print(f"Task #{task_id} → \"{stage_name}\"{suffix}")
    return ""


def process_task(
    client: TaskClient,
    task_id: str,
    branch_stage: BranchStage,
    *,
    dry_run: bool = False,
) -> TaskResult:
    try:
        task = client.fetch_task(task_id)
    except RemoteCallError as exc:
        _error(f"Failed to fetch task #{task_id}: {exc}")
        return TaskResult(task_id=task_id, success=False, error=str(exc))

    if task.stage_name == branch_stage.target_stage:
        print(f"Task #{task_id} already in \"{branch_stage.target_stage}\"")
        return TaskResult(task_id=task_id, success=True, parent_id=task.parent_id)

    error = _update_stage(
        client,
        task_id,
        branch_stage.target_stage_id,
        branch_stage.target_stage,
        DIRECT_UPDATE_REASON,
        dry_run=dry_run,
    )
    return TaskResult(
        task_id=task_id,
        success=not error,
        parent_id=task.parent_id,
        updated=not error,
        error=error,
    )


def process_parent(
    client: TaskClient,
    parent_id: str,
    config: SyncConfig,
    directory: StageDirectory,
    *,
    dry_run: bool = False,
    planned_stages: Mapping[str, str] | None = None,
) -> ParentResult:
    """Re-evaluate one parent.

    ``planned_stages`` maps task ids to the stage a dry run would have moved them
    to, so the plan shows the parent moves a real run would make.
    """
    print(f"\nProcessing parent task #{parent_id}...")
    try:
        parent = client.fetch_task(parent_id)
    except RemoteCallError as exc:
        _error(f"Could not fetch parent task #{parent_id}: {exc}")
        return ParentResult(parent_id=parent_id, success=False, error=str(exc))

    current_stage = parent.stage_name
    print(f"   Parent current stage: {current_stage}")

    try:
        subtasks = client.list_tasks_with_parent(parent_id)
    except RemoteCallError as exc:
        _error(f"Failed to fetch subtasks for parent #{parent_id}: {exc}")
        return ParentResult(parent_id=parent_id, success=False, error=str(exc))

    if not subtasks:
        print(f"   No subtasks found for parent #{parent_id}")
        return ParentResult(parent_id=parent_id, success=True)

    planned_stages = planned_stages or {}
    subtask_stages = [planned_stages.get(subtask.id, subtask.stage_name) for subtask in subtasks]
    print(f"   Found {len(subtasks)} subtask(s)")
    for subtask, stage in zip(subtasks, subtask_stages):
        print(f"      - Subtask #{subtask.id}: {stage}")

    target = evaluate_parent_rules(
        config.parent_rules,
        directory,
        current_stage,
        subtask_stages,
    )
    if target is None:
        print("   No stage change needed for parent")
        return ParentResult(parent_id=parent_id, success=True)
    if not target.stage_id:
        print(f"   No stage id configured for \"{target.stage}\"; parent left unchanged")
        return ParentResult(parent_id=parent_id, success=True)

    if not directory.is_forward(current_stage, target.stage):
        print(f"   Cannot move parent backwards: {current_stage} → {target.stage}")
        return ParentResult(parent_id=parent_id, success=True, skipped=True)

    if current_stage == target.stage:
        print(f"   Parent already in target stage: {target.stage}")
        return ParentResult(parent_id=parent_id, success=True)

    error = _update_stage(
        client, parent_id, target.stage_id, target.stage, target.reason, dry_run=dry_run
    )
    if error:
        return ParentResult(parent_id=parent_id, success=False, error=error)
    return ParentResult(parent_id=parent_id, success=True, updated=True)


def _validate_run(config: SyncConfig, inputs: RunInputs) -> None:
    errors: list[str] = []
    if not inputs.api_key:
        errors.append("an API key is required")
    if not inputs.branch:
        errors.append("a target branch is required")
    if not config.project_id:
        errors.append("a project id is required")
    if not config.todo_list_id:
        errors.append("a to-do list id is required")
    if not config.branches:
        errors.append("at least one branch stage is required")
    if errors:
        raise ConfigurationError(errors)


def run_reconciliation(
    config: SyncConfig,
    inputs: RunInputs,
    client: TaskClient,
    *,
    dry_run: bool = False,
) -> RunSummary:
    _validate_run(config, inputs)
    directory = StageDirectory.from_config(config)

    branch_stage = directory.branch_stage(inputs.branch)
    if branch_stage is None:
        message = f"No task automation configured for branch: {inputs.branch}"
        print(message)
        return RunSummary(
            branch=inputs.branch,
            parent_rules_enabled=config.parent_rules_enabled,
            dry_run=dry_run,
            message=message,
        )

    print(f"Target Branch: {inputs.branch}")
    print(f"Target Stage: {branch_stage.target_stage}")
    print(f"PR Number: #{inputs.pr_number}\n")

    task_ids = extract_task_ids(inputs.pr_body)
    if not task_ids:
        message = "No tasks were added in the PR. No updates performed."
        print(message)
        return RunSummary(
            branch=inputs.branch,
            parent_rules_enabled=config.parent_rules_enabled,
            target_stage=branch_stage.target_stage,
            dry_run=dry_run,
            message=message,
        )

    print(f"Found {len(task_ids)} added task(s): {', '.join(task_ids)}\n")

    task_results: list[TaskResult] = []
    # dict keeps first-seen order while collapsing duplicate parents.
    pending_parents: dict[str, None] = {}
    planned_stages: dict[str, str] = {}
    for task_id in task_ids:
        result = process_task(client, task_id, branch_stage, dry_run=dry_run)
        task_results.append(result)
        if dry_run and result.updated:
            planned_stages[task_id] = branch_stage.target_stage
        if result.parent_id and config.parent_rules_enabled:
            pending_parents.setdefault(result.parent_id, None)

    parent_results: list[ParentResult] = []
    if config.parent_rules_enabled and pending_parents:
        print(f"\nProcessing {len(pending_parents)} parent task(s)...")
        for parent_id in pending_parents:
            parent_results.append(
                process_parent(
                    client,
                    parent_id,
                    config,
                    directory,
                    dry_run=dry_run,
                    planned_stages=planned_stages,
                )
            )

    return RunSummary(
        branch=inputs.branch,
        task_ids=tuple(task_ids),
        task_results=tuple(task_results),
        parent_results=tuple(parent_results),
        parent_rules_enabled=config.parent_rules_enabled,
        target_stage=branch_stage.target_stage,
        dry_run=dry_run,
    )


def render_summary(summary: RunSummary) -> str:
    lines = [SUMMARY_RULE, "EXECUTION SUMMARY", SUMMARY_RULE]
    lines.append(f"Tasks updated: {summary.tasks_succeeded}/{len(summary.task_ids)}")
    if summary.tasks_failed:
        lines.append(f"Tasks failed: {summary.tasks_failed}")
    if summary.parent_rules_enabled and summary.parent_results:
        total = len(summary.parent_results)
        lines.append(f"Parent tasks updated: {summary.parents_updated}/{total}")
        if summary.parents_skipped:
            lines.append(
                f"Parent tasks skipped (backward movement): {summary.parents_skipped}"
            )
        if summary.parents_failed:
            lines.append(f"Parent tasks failed: {summary.parents_failed}")
    if summary.dry_run:
        lines.append("Dry run: no remote updates were issued")
    lines.append(SUMMARY_RULE)
    return "\n".join(lines)
