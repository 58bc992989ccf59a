"""
Support threads: one canonical document per thread at `support/{supportId}.json`.

A thread id is derived from the submission's idempotency key, so a retried
submission always addresses the same thread; follow-up messages name the
thread explicitly with `supportId`.
"""

import hashlib
from datetime import datetime
from typing import Any, Dict, Optional

from va_gateway.merge import FieldPolicy, merge_canonical
from va_gateway.projection import TaskTrackerClient, projection_state, record_projection
from va_gateway.results import MutationResult
from va_gateway.schemas import SupportMessage
from va_gateway.store import ObjectStore
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.support")

SOURCE = "support"
STATUS_OPEN = "open"

THREAD_POLICY = {
    "updatedAt": FieldPolicy.ALWAYS_OVERWRITE,
    "latestUpdate": FieldPolicy.ALWAYS_OVERWRITE,
}


def support_id_for(event_id: str) -> str:
    digest = hashlib.sha256(event_id.encode("utf-8")).hexdigest()
    return f"SUP-{digest[:8].upper()}"


def thread_key(support_id: str) -> str:
    return f"support/{support_id}.json"


def load_thread(store: ObjectStore, support_id: str) -> Optional[Dict[str, Any]]:
    return store.get_json(thread_key(support_id))


def append_message(
    store: ObjectStore,
    support_id: str,
    account_id: Optional[str],
    msg: SupportMessage,
    utm: Dict[str, str],
    now: datetime,
    email: Optional[str] = None,
) -> Dict[str, Any]:
    """Append one message to the thread, creating the thread on first use."""
    ts = now.isoformat()
    entry = {
        "createdAt": ts,
        "eventId": msg.eventId,
        "message": msg.message,
        "subject": msg.subject,
    }
    incoming: Dict[str, Any] = {
        "accountId": account_id,
        "category": msg.category,
        "createdAt": ts,
        "email": email,
        "latestUpdate": f"Message received: {msg.subject}"[:240],
        "priority": msg.priority,
        "supportId": support_id,
        "updatedAt": ts,
        "utm": utm,
    }

    def mutate(current):
        thread = merge_canonical(current, incoming, THREAD_POLICY)
        if not thread.get("status"):
            thread["status"] = STATUS_OPEN
        thread["messages"] = list((current or {}).get("messages") or []) + [entry]
        thread.setdefault("projection", None)
        return thread

    thread = store.update_json(thread_key(support_id), mutate)
    logger.info(
        "support.message_appended",
        extra={"support_id": support_id, "event_id": msg.eventId, "messages": len(thread["messages"])},
    )
    return thread


def project_thread(
    store: ObjectStore,
    thread: Dict[str, Any],
    msg: SupportMessage,
    tracker: Optional[TaskTrackerClient],
    list_id: Optional[str],
) -> Optional[Dict[str, Any]]:
    """
    Mirror the new message into the tracker: a task for a new thread, a
    comment on the existing task otherwise. Outcome is stored on the thread.
    """
    if tracker is None or not list_id:
        return None

    support_id = thread["supportId"]
    previous = thread.get("projection") or {}
    try:
        task_id = previous.get("taskId")
        if task_id:
            tracker.add_comment(task_id, f"{msg.subject}\n\n{msg.message}")
        else:
            task_id = tracker.create_task(
                list_id,
                name=f"[{support_id}] {msg.subject}",
                description=msg.message,
            )
        state = projection_state(previous, ok=True, task_id=task_id)
    except Exception as e:
        # Tracker trouble never fails the request
        logger.warning("support.projection_failed", extra={"support_id": support_id, "error": str(e)})
        state = projection_state(previous, ok=False, error=str(e))

    return record_projection(store, thread_key(support_id), state)


def record_submission(
    store: ObjectStore,
    support_id: str,
    account_id: Optional[str],
    msg: SupportMessage,
    utm: Dict[str, str],
    now: datetime,
    email: Optional[str] = None,
    tracker: Optional[TaskTrackerClient] = None,
    list_id: Optional[str] = None,
) -> MutationResult:
    thread = append_message(store, support_id, account_id, msg, utm, now, email=email)
    data: Dict[str, Any] = {"supportId": support_id, "status": thread.get("status")}
    projection = project_thread(store, thread, msg, tracker, list_id)
    if projection is not None:
        data["projection"] = projection
    return MutationResult.done(**data)


def thread_status(thread: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "status": thread.get("status"),
        "latestUpdate": thread.get("latestUpdate"),
        "updatedAt": thread.get("updatedAt"),
    }
