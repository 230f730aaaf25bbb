"""Stagesync constants — defaults, patterns, and environment variable names."""

from __future__ import annotations

import re

DEFAULT_API_URL = "https://api.proofhub.com"
DEFAULT_CONFIG_PATH = "stagesync.yaml"
USER_AGENT = "Github Actions"
HTTP_TIMEOUT_SECONDS = 60

UNKNOWN_STAGE = "Unknown"
DIRECT_UPDATE_REASON = "Direct update from PR"

CONDITION_ALL = "all"
CONDITION_SOME = "some"
RULE_CONDITIONS = (CONDITION_ALL, CONDITION_SOME)

# The section runs from the header to the next horizontal rule or end of text.
TASK_SECTION_PATTERN = re.compile(
    r"### 📋 ProofHub Tasks([\s\S]*?)(?:\n---|\Z)", re.IGNORECASE
)
TASK_ID_PATTERN = re.compile(r"#(\d{9,})")

ENV_API_KEY = "PROOFHUB_API_KEY"
ENV_TARGET_BRANCH = "TARGET_BRANCH"
ENV_PR_BODY = "PR_BODY"
ENV_PR_NUMBER = "PR_NUMBER"

SUMMARY_RULE = "=" * 60
