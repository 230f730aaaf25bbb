from __future__ import annotations

from stagesync.constants import TASK_ID_PATTERN, TASK_SECTION_PATTERN


def extract_task_section(text: str | None) -> str | None:
    """Return the body of the first ProofHub tasks section, or None when absent."""
    match = TASK_SECTION_PATTERN.search(text or "")
    if match is None:
        return None
    return match.group(1)


def extract_task_ids(text: str | None) -> list[str]:
    """Return distinct task ids from the PR body's tasks section in first-seen order."""
    section = extract_task_section(text)
    if section is None:
        return []
    seen: dict[str, None] = {}
    for match in TASK_ID_PATTERN.finditer(section):
        seen.setdefault(match.group(1), None)
    return list(seen)
