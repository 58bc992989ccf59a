"""
Canonical document merge.

Every canonical upsert in the gateway goes through `merge_canonical` with an
explicit per-field policy; nested objects are merged key by key and policies
for nested fields use dotted paths (`"subscription.active"`).
"""

import copy
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class FieldPolicy(str, Enum):
    KEEP_IF_ABSENT = "keep_if_absent"
    ALWAYS_OVERWRITE = "always_overwrite"
    IMMUTABLE = "immutable"


ALWAYS_IMMUTABLE = frozenset({"createdAt"})


def _absent(value: Any) -> bool:
    return value is None or value == ""


def merge_canonical(
    existing: Optional[Dict[str, Any]],
    incoming: Mapping[str, Any],
    policy: Optional[Mapping[str, FieldPolicy]] = None,
    _prefix: str = "",
) -> Dict[str, Any]:
    """
    Merge `incoming` over `existing` and return a new document.

    KEEP_IF_ABSENT (the default) keeps the prior value when the incoming one
    is None or empty; ALWAYS_OVERWRITE replaces unconditionally; IMMUTABLE
    only writes when no value is stored yet. `createdAt` is always immutable.
    """
    policy = policy or {}
    merged: Dict[str, Any] = copy.deepcopy(existing) if existing else {}

    for key, new in incoming.items():
        path = f"{_prefix}{key}"
        rule = FieldPolicy.IMMUTABLE if key in ALWAYS_IMMUTABLE else policy.get(
            path, FieldPolicy.KEEP_IF_ABSENT
        )
        old = merged.get(key)

        if rule is FieldPolicy.IMMUTABLE:
            if _absent(old):
                merged[key] = copy.deepcopy(new)
            continue

        if isinstance(new, dict) and isinstance(old, dict):
            merged[key] = merge_canonical(old, new, policy, _prefix=f"{path}.")
            continue

        if rule is FieldPolicy.ALWAYS_OVERWRITE or not _absent(new) or key not in merged:
            merged[key] = copy.deepcopy(new)

    return merged
