"""
Task-tracker projection client (ClickUp v2 API shape).

Projection mirrors canonical state into the tracker so the team can work
support threads and new accounts from there. It is write-only and best
effort: the gateway never reads tracker state back, and callers record
failures on the canonical object instead of failing the request.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from va_gateway.config import Settings
from va_gateway.errors import StoreError
from va_gateway.store import ObjectStore
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.projection")

REQUEST_TIMEOUT = 10  # seconds; the whole Lambda has little more than this
MAX_RETRIES = 2
BACKOFF_FACTOR = 0.5


class ProjectionError(Exception):
    """Custom exception for task-tracker API errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TaskTrackerClient:
    def __init__(self, token: str, base_url: str, session: Optional[requests.Session] = None):
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._session = session if session is not None else self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=MAX_RETRIES,
            backoff_factor=BACKOFF_FACTOR,
            status_forcelist=[429, 502, 503, 504],
            allowed_methods=["POST"],
        )
        session.mount("https://", HTTPAdapter(max_retries=retry_strategy))
        return session

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.post(
                url,
                json=payload,
                headers={"Authorization": self._token, "Content-Type": "application/json"},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise ProjectionError(f"request to {path} failed: {e.__class__.__name__}") from e

        if resp.status_code >= 400:
            raise ProjectionError(
                f"tracker returned HTTP {resp.status_code} for {path}",
                status_code=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError:
            return {}
        if not isinstance(data, dict):
            raise ProjectionError(f"tracker returned a non-object body for {path}", status_code=resp.status_code)
        return data

    def create_task(self, list_id: str, name: str, description: str) -> str:
        data = self._post(f"/list/{list_id}/task", {"name": name, "description": description})
        task_id = data.get("id")
        if not task_id:
            raise ProjectionError("tracker response missing task id")
        return str(task_id)

    def add_comment(self, task_id: str, text: str) -> None:
        self._post(f"/task/{task_id}/comment", {"comment_text": text, "notify_all": False})


def build_task_tracker(settings: Settings) -> Optional[TaskTrackerClient]:
    """Tracker client, or None when projection credentials are not configured."""
    if not settings.projection_enabled:
        return None
    return TaskTrackerClient(settings.task_tracker_token, settings.task_tracker_base_url)


def projection_state(
    previous: Optional[Dict[str, Any]],
    ok: bool,
    task_id: Optional[str] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    """Projection sub-object stored on the canonical document."""
    previous = previous or {}
    return {
        "ok": ok,
        "taskId": task_id or previous.get("taskId"),
        "error": error,
        "updatedAt": datetime.now(timezone.utc).isoformat(),
    }


def record_projection(store: ObjectStore, key: str, state: Dict[str, Any]) -> Dict[str, Any]:
    """
    Store `state` on the canonical document at `key` and return the
    projection summary for the response. A failed write is reported in the
    summary only; the canonical write it follows has already succeeded.
    """

    def mutate(current):
        if current is None:
            return None
        updated = dict(current)
        updated["projection"] = state
        return updated

    try:
        store.update_json(key, mutate)
    except StoreError as e:
        logger.warning("projection.record_failed", extra={"key": key, "error": str(e)})
        return {"ok": False, "error": f"projection state not recorded: {e}"}
    return {"ok": state["ok"], "error": state["error"]}
