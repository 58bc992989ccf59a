"""
VA directory: profile pages plus one sorted index of published slugs.

Profile pages are overwritten whole on publish (only `createdAt` survives);
the index is read, filtered, appended to and fully re-sorted by slug on every
publish.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from va_gateway.results import MutationResult
from va_gateway.schemas import PublishForm
from va_gateway.store import ObjectStore
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.directory")

SOURCE = "va-publish"
INDEX_KEY = "va/directory/index.json"


class SlugTaken(Exception):
    """The slug is already published by a different account."""


def page_key(slug: str) -> str:
    return f"va/pages/{slug}.json"


def slug_owner(store: ObjectStore, slug: str) -> Optional[str]:
    page = store.get_json(page_key(slug))
    return page.get("accountId") if page else None


def _entries(index: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    entries = (index or {}).get("directory")
    if not isinstance(entries, list):
        return []
    return [e for e in entries if isinstance(e, dict) and isinstance(e.get("slug"), str)]


def publish_profile(store: ObjectStore, account_id: str, form: PublishForm, now: datetime) -> MutationResult:
    ts = now.isoformat()
    slug = form.slug

    def write_page(current):
        if current is not None and current.get("accountId") not in (None, account_id):
            raise SlugTaken(slug)
        page = form.model_dump()
        page.update(
            {
                "accountId": account_id,
                "createdAt": (current or {}).get("createdAt") or ts,
                "updatedAt": ts,
            }
        )
        return page

    store.update_json(page_key(slug), write_page)

    def write_index(current):
        entries = [e for e in _entries(current) if e["slug"] != slug]
        entries.append({"accountId": account_id, "slug": slug, "updatedAt": ts})
        entries.sort(key=lambda e: e["slug"])
        return {"directory": entries, "updatedAt": ts}

    index = store.update_json(INDEX_KEY, write_index)
    logger.info(
        "directory.published",
        extra={"slug": slug, "account_id": account_id, "entries": len(index["directory"])},
    )
    return MutationResult.done(slug=slug)
