"""Stage lookup, forward-movement guard, and parent-rule evaluation.

Parent rules are evaluated first-match: the first rule whose ``parent_stage``
equals the parent's current stage is the only candidate, and within it the
first satisfied action decides the move.  At most one transition is produced
per parent.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from stagesync.constants import CONDITION_ALL, CONDITION_SOME
from stagesync.models import BranchStage, StageAction, StageRule, StageTarget, SyncConfig


class StageDirectory:
    def __init__(
        self,
        branches: Mapping[str, BranchStage],
        hierarchy: Mapping[str, int],
    ) -> None:
        self._branches = branches
        self._hierarchy = hierarchy

    @classmethod
    def from_config(cls, config: SyncConfig) -> "StageDirectory":
        return cls(config.branches, config.hierarchy)

    def branch_stage(self, branch: str) -> BranchStage | None:
        return self._branches.get(branch)

    def stage_id_for_name(self, name: str) -> str | None:
        # Only direct branch targets carry stage ids.
        for branch_stage in self._branches.values():
            if branch_stage.target_stage == name:
                return branch_stage.target_stage_id
        return None

    def rank(self, stage: str) -> int:
        return int(self._hierarchy.get(stage, 0) or 0)

    def is_forward(self, current_stage: str, target_stage: str) -> bool:
        if not self._hierarchy:
            return True
        return self.rank(target_stage) >= self.rank(current_stage)


def _select_rule(rules: Iterable[StageRule], parent_stage: str) -> StageRule | None:
    for rule in rules:
        if rule.parent_stage == parent_stage:
            return rule
    return None


def _action_satisfied(action: StageAction, subtask_stages: Sequence[str]) -> bool:
    matching = sum(1 for stage in subtask_stages if stage == action.subtask_stage)
    if action.condition == CONDITION_ALL:
        return bool(subtask_stages) and matching == len(subtask_stages)
    if action.condition == CONDITION_SOME:
        return matching > 0
    return False


def _reason_for(action: StageAction) -> str:
    quantifier = "All" if action.condition == CONDITION_ALL else "Some"
    return f"{quantifier} subtasks in {action.subtask_stage}"


def evaluate_parent_rules(
    rules: Iterable[StageRule],
    directory: StageDirectory,
    parent_stage: str,
    subtask_stages: Sequence[str],
) -> StageTarget | None:
    rule = _select_rule(rules, parent_stage)
    if rule is None:
        return None
    for action in rule.actions:
        if not _action_satisfied(action, subtask_stages):
            continue
        return StageTarget(
            stage=action.move_parent_to,
            stage_id=directory.stage_id_for_name(action.move_parent_to),
            reason=_reason_for(action),
        )
    return None


def unresolvable_rule_targets(
    rules: Iterable[StageRule], directory: StageDirectory
) -> list[str]:
    """Return ``moveParentTo`` names that have no stage id among branch targets."""
    missing: list[str] = []
    for rule in rules:
        for action in rule.actions:
            name = action.move_parent_to
            if directory.stage_id_for_name(name) is None and name not in missing:
                missing.append(name)
    return missing
