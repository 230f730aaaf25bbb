"""Stagesync data models — exceptions, dataclasses, and coercion helpers."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from stagesync.constants import UNKNOWN_STAGE


def _coerce_id(value: Any) -> str | None:
    """Normalize a remote identifier to text; falsy values mean "absent"."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text or text == "0":
        return None
    return text


class ConfigurationError(RuntimeError):
    """Raised when required configuration or process inputs are missing or invalid."""

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class RemoteCallError(RuntimeError):
    """Raised when a call to the task service fails."""


@dataclass(frozen=True)
class Task:
    id: str
    stage_name: str = UNKNOWN_STAGE
    parent_id: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Task":
        stage = payload.get("stage")
        stage_name = ""
        if isinstance(stage, Mapping):
            stage_name = str(stage.get("name") or "").strip()
        return cls(
            id=_coerce_id(payload.get("id")) or "",
            stage_name=stage_name or UNKNOWN_STAGE,
            parent_id=_coerce_id(payload.get("parent_id")),
        )


@dataclass(frozen=True)
class BranchStage:
    target_stage: str
    target_stage_id: str


@dataclass(frozen=True)
class StageAction:
    condition: str  # "all" | "some"
    subtask_stage: str
    move_parent_to: str


@dataclass(frozen=True)
class StageRule:
    parent_stage: str
    actions: tuple[StageAction, ...] = ()


@dataclass(frozen=True)
class StageTarget:
    """Outcome of parent-rule evaluation."""
    stage: str
    stage_id: str | None
    reason: str


@dataclass(frozen=True)
class SyncConfig:
    api_url: str
    project_id: str
    todo_list_id: str
    branches: Mapping[str, BranchStage]
    hierarchy: Mapping[str, int]
    parent_rules: tuple[StageRule, ...]
    parent_rules_enabled: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "branches", MappingProxyType(dict(self.branches)))
        object.__setattr__(self, "hierarchy", MappingProxyType(dict(self.hierarchy)))
        object.__setattr__(self, "parent_rules", tuple(self.parent_rules))


@dataclass(frozen=True)
class RunInputs:
    api_key: str
    branch: str
    pr_body: str = ""
    pr_number: str = ""


@dataclass(frozen=True)
class TaskResult:
    task_id: str
    success: bool
    parent_id: str | None = None
    updated: bool = False
    error: str = ""


@dataclass(frozen=True)
class ParentResult:
    parent_id: str
    success: bool
    updated: bool = False
    skipped: bool = False
    error: str = ""


@dataclass(frozen=True)
class RunSummary:
    branch: str
    task_ids: tuple[str, ...] = ()
    task_results: tuple[TaskResult, ...] = ()
    parent_results: tuple[ParentResult, ...] = ()
    parent_rules_enabled: bool = True
    target_stage: str = ""
    dry_run: bool = False
    message: str = ""

    @property
    def tasks_succeeded(self) -> int:
        return sum(1 for result in self.task_results if result.success)

    @property
    def tasks_failed(self) -> int:
        return sum(1 for result in self.task_results if not result.success)

    @property
    def parents_updated(self) -> int:
        return sum(1 for result in self.parent_results if result.success and result.updated)

    @property
    def parents_skipped(self) -> int:
        return sum(1 for result in self.parent_results if result.success and result.skipped)

    @property
    def parents_failed(self) -> int:
        return sum(1 for result in self.parent_results if not result.success)

    @property
    def exit_code(self) -> int:
        # Parent failures are reported but never fail the run.
        return 1 if self.tasks_failed > 0 else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "branch": self.branch,
            "target_stage": self.target_stage,
            "dry_run": self.dry_run,
            "message": self.message,
            "task_ids": list(self.task_ids),
            "tasks": [
                {
                    "task_id": result.task_id,
                    "success": result.success,
                    "updated": result.updated,
                    "parent_id": result.parent_id,
                    "error": result.error,
                }
                for result in self.task_results
            ],
            "parents": [
                {
                    "parent_id": result.parent_id,
                    "success": result.success,
                    "updated": result.updated,
                    "skipped": result.skipped,
                    "error": result.error,
                }
                for result in self.parent_results
            ],
            "counts": {
                "tasks_attempted": len(self.task_results),
                "tasks_succeeded": self.tasks_succeeded,
                "tasks_failed": self.tasks_failed,
                "parents_updated": self.parents_updated,
                "parents_skipped": self.parents_skipped,
                "parents_failed": self.parents_failed,
            },
            "exit_code": self.exit_code,
        }
