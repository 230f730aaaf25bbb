from __future__ import annotations

import pytest

from stagesync.models import BranchStage, StageAction, StageRule
from stagesync.stages import (
    StageDirectory,
    evaluate_parent_rules,
    unresolvable_rule_targets,
)

BRANCHES = {
    "development": BranchStage(target_stage="QA", target_stage_id="Q1"),
    "main": BranchStage(target_stage="Completed", target_stage_id="C1"),
    "hotfix": BranchStage(target_stage="Completed", target_stage_id="C2"),
}
HIERARCHY = {"To Do": 1, "Dev": 2, "QA": 4, "Done": 5, "Completed": 6}


def _directory(hierarchy: dict[str, int] | None = None) -> StageDirectory:
    return StageDirectory(BRANCHES, HIERARCHY if hierarchy is None else hierarchy)


def test_stage_id_for_name_scans_branch_targets_in_order() -> None:
    directory = _directory()
    assert directory.stage_id_for_name("QA") == "Q1"
    assert directory.stage_id_for_name("Completed") == "C1"
    assert directory.stage_id_for_name("Dev") is None


@pytest.mark.parametrize("stage", ["To Do", "QA", "Completed", "Nonexistent"])
def test_is_forward_is_reflexive(stage: str) -> None:
    assert _directory().is_forward(stage, stage) is True


def test_is_forward_with_empty_hierarchy_allows_everything() -> None:
    directory = _directory(hierarchy={})
    assert directory.is_forward("Completed", "To Do") is True
    assert directory.is_forward("anything", "else") is True


def test_is_forward_compares_ranks() -> None:
    directory = _directory()
    assert directory.is_forward("Dev", "QA") is True
    assert directory.is_forward("Completed", "QA") is False


def test_is_forward_treats_unranked_stage_as_lowest() -> None:
    directory = _directory()
    assert directory.is_forward("Mystery", "To Do") is True
    assert directory.is_forward("To Do", "Mystery") is False


def test_evaluate_all_condition_fires_when_every_subtask_matches() -> None:
    rules = [
        StageRule(
            parent_stage="To Do",
            actions=(StageAction("all", "Done", "Completed"),),
        )
    ]
    target = evaluate_parent_rules(rules, _directory(), "To Do", ["Done", "Done"])
    assert target is not None
    assert target.stage == "Completed"
    assert target.stage_id == "C1"
    assert target.reason == "All subtasks in Done"

    assert evaluate_parent_rules(rules, _directory(), "To Do", ["Done", "Pending"]) is None


def test_evaluate_all_condition_never_fires_without_subtasks() -> None:
    rules = [StageRule("To Do", (StageAction("all", "Done", "Completed"),))]
    assert evaluate_parent_rules(rules, _directory(), "To Do", []) is None


def test_evaluate_first_satisfied_action_wins() -> None:
    rules = [
        StageRule(
            parent_stage="Dev",
            actions=(
                StageAction("some", "X", "QA"),
                StageAction("all", "X", "Completed"),
            ),
        )
    ]
    target = evaluate_parent_rules(rules, _directory(), "Dev", ["X", "X", "X"])
    assert target is not None
    assert target.stage == "QA"
    assert target.reason == "Some subtasks in X"


def test_evaluate_only_first_matching_rule_is_considered() -> None:
    rules = [
        StageRule("Dev", (StageAction("all", "Done", "Completed"),)),
        StageRule("Dev", (StageAction("some", "QA", "QA"),)),
    ]
    assert evaluate_parent_rules(rules, _directory(), "Dev", ["QA", "Dev"]) is None


def test_evaluate_without_matching_rule_returns_none() -> None:
    rules = [StageRule("QA", (StageAction("some", "QA", "Completed"),))]
    assert evaluate_parent_rules(rules, _directory(), "To Do", ["QA"]) is None


def test_evaluate_unresolvable_target_has_no_stage_id() -> None:
    rules = [StageRule("To Do", (StageAction("some", "Dev", "Dev"),))]
    target = evaluate_parent_rules(rules, _directory(), "To Do", ["Dev"])
    assert target is not None
    assert target.stage == "Dev"
    assert target.stage_id is None


def test_unresolvable_rule_targets_lists_each_name_once() -> None:
    rules = [
        StageRule("To Do", (StageAction("some", "Dev", "Dev"), StageAction("all", "QA", "QA"))),
        StageRule("QA", (StageAction("all", "Done", "Dev"),)),
    ]
    assert unresolvable_rule_targets(rules, _directory()) == ["Dev"]
