"""Tagged results shared by validation and canonical mutation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class SkipReason(str, Enum):
    DEDUPED = "deduped"
    IGNORED_EVENT_TYPE = "ignored_event_type"
    CORRELATION_MISSING = "correlation_missing"
    ACCOUNT_MISSING = "account_missing"
    CANONICAL_WRITE_FAILED = "canonical_write_failed"


# Human-readable notes, kept in responses for operators reading raw logs.
_NOTES = {
    SkipReason.DEDUPED: "Event already processed",
    SkipReason.IGNORED_EVENT_TYPE: "Event type not handled; receipt stored only",
    SkipReason.CORRELATION_MISSING: "No correlation index entry; receipt stored only",
    SkipReason.ACCOUNT_MISSING: "Correlated account not found; receipt stored only",
    SkipReason.CANONICAL_WRITE_FAILED: "Receipt stored; canonical write failed",
}


@dataclass
class MutationResult:
    applied: bool
    reason: Optional[SkipReason] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def done(cls, **data: Any) -> "MutationResult":
        return cls(applied=True, data=data)

    @classmethod
    def skipped(cls, reason: SkipReason, **data: Any) -> "MutationResult":
        return cls(applied=False, reason=reason, data=data)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"ok": True, "applied": self.applied}
        if self.reason is SkipReason.DEDUPED:
            body["deduped"] = True
        if self.reason is not None:
            body["reason"] = self.reason.value
            body["note"] = _NOTES[self.reason]
        body.update(self.data)
        return body


@dataclass
class Valid(Generic[T]):
    payload: T


@dataclass
class Invalid:
    reason: str
    field: Optional[str] = None


Validation = Union[Valid, Invalid]
