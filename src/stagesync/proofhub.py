"""Minimal ProofHub v3 task client.

Every failure (HTTP status, transport, undecodable body) surfaces as
``RemoteCallError`` so callers can convert it into a result value.
"""

from __future__ import annotations

import http.client
import json
import urllib.error
import urllib.request
from typing import Any, Protocol

from stagesync.constants import HTTP_TIMEOUT_SECONDS, USER_AGENT
from stagesync.models import RemoteCallError, SyncConfig, Task


class TaskClient(Protocol):
    def fetch_task(self, task_id: str) -> Task: ...

    def list_tasks_with_parent(self, parent_id: str) -> list[Task]: ...

    def update_task_stage(self, task_id: str, stage_id: str) -> None: ...


def _parent_matches(task: Task, parent_id: str) -> bool:
    if task.parent_id is None:
        return False
    try:
        return int(task.parent_id) == int(parent_id)
    except ValueError:
        return task.parent_id == parent_id


class ProofHubClient:
    def __init__(
        self,
        api_url: str,
        api_key: str,
        project_id: str,
        todo_list_id: str,
        *,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.project_id = project_id
        self.todo_list_id = todo_list_id
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: SyncConfig, api_key: str) -> "ProofHubClient":
        return cls(config.api_url, api_key, config.project_id, config.todo_list_id)

    def _tasks_url(self, task_id: str | None = None) -> str:
        url = (
            f"{self.api_url}/api/v3/projects/{self.project_id}"
            f"/todolists/{self.todo_list_id}/tasks"
        )
        return f"{url}/{task_id}" if task_id else url

    def _request(self, method: str, url: str, payload: dict[str, Any] | None = None) -> Any:
        headers = {"X-API-Key": self.api_key, "User-Agent": USER_AGENT}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"
        req = urllib.request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", errors="replace") if e.fp else ""
            raise RemoteCallError(f"HTTP {e.code} {method} {url}: {error_body[:500]}") from e
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            raise RemoteCallError(f"{method} {url} failed: {e!r}") from e
        except UnicodeDecodeError as e:
            raise RemoteCallError(f"{method} {url} returned a non UTF-8 body: {e}") from e
        if not raw.strip():
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise RemoteCallError(f"{method} {url} returned invalid JSON: {e}") from e

    def fetch_task(self, task_id: str) -> Task:
        payload = self._request("GET", self._tasks_url(task_id))
        if not isinstance(payload, dict):
            raise RemoteCallError(f"task #{task_id}: unexpected response payload")
        task = Task.from_payload(payload)
        if not task.id:
            task = Task(id=str(task_id), stage_name=task.stage_name, parent_id=task.parent_id)
        return task

    def list_tasks_with_parent(self, parent_id: str) -> list[Task]:
        # The list endpoint has no parent filter; scan the whole to-do list.
        payload = self._request("GET", self._tasks_url())
        if not isinstance(payload, list):
            raise RemoteCallError(f"task list for parent #{parent_id}: expected a JSON array")
        tasks = [Task.from_payload(item) for item in payload if isinstance(item, dict)]
        return [task for task in tasks if _parent_matches(task, parent_id)]

    def update_task_stage(self, task_id: str, stage_id: str) -> None:
        self._request("PUT", self._tasks_url(task_id), {"stage": stage_id})
