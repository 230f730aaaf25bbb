from __future__ import annotations

from stagesync.extract import extract_task_ids, extract_task_section

HEADER = "### 📋 ProofHub Tasks"


def test_extract_task_ids_without_header_returns_empty() -> None:
    body = "Fixes #123456789 and #987654321\n\nNo task section here."
    assert extract_task_ids(body) == []
    assert extract_task_section(body) is None


def test_extract_task_ids_handles_missing_body() -> None:
    assert extract_task_ids(None) == []
    assert extract_task_ids("") == []


def test_extract_task_ids_dedupes_in_first_seen_order() -> None:
    body = (
        "## Summary\nSome change.\n\n"
        f"{HEADER}\n"
        "- #987654321 login form\n"
        "- #123456789 password reset\n"
        "- #987654321 (again)\n"
        "- #555555555555 long id\n"
        "- #987654321\n"
    )
    assert extract_task_ids(body) == ["987654321", "123456789", "555555555555"]


def test_extract_task_ids_ignores_short_numbers_and_text_outside_section() -> None:
    body = (
        "Related to #111111111 outside the section.\n"
        f"{HEADER}\n"
        "- #12345678 too short\n"
        "- #222222222 counted\n"
        "\n---\n"
        "- #333333333 after the rule\n"
    )
    assert extract_task_ids(body) == ["222222222"]


def test_extract_task_ids_header_is_case_insensitive() -> None:
    body = "### 📋 PROOFHUB TASKS\n- #444444444\n"
    assert extract_task_ids(body) == ["444444444"]


def test_extract_task_ids_scans_only_first_section() -> None:
    body = (
        f"{HEADER}\n- #100000001\n\n---\n"
        f"{HEADER}\n- #100000002\n"
    )
    assert extract_task_ids(body) == ["100000001"]


def test_extract_task_ids_section_runs_to_end_of_text() -> None:
    body = f"{HEADER}\n- #100000001\n- #100000002"
    assert extract_task_ids(body) == ["100000001", "100000002"]
