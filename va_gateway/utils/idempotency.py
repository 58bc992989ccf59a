from va_gateway.errors import ConflictError
from va_gateway.store import ObjectStore
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.idempotency")


def receipt_key(source: str, event_id: str) -> str:
    return f"receipts/{source}/{event_id}.json"


def was_processed(store: ObjectStore, source: str, event_id: str, body: bytes) -> bool:
    """
    Receipt gate. Returns True when `(source, event_id)` already has a receipt.

    Otherwise writes the receipt (write-once, `If-None-Match: *`) and returns
    False; the caller applies its canonical mutation only after this returns.
    A concurrent delivery that loses the create race is reported as processed.
    """
    key = receipt_key(source, event_id)
    if store.exists(key):
        logger.info("receipt.deduped", extra={"source": source, "event_id": event_id})
        return True

    try:
        store.put(key, body, if_none_match=True)
    except ConflictError:
        logger.info("receipt.race_lost", extra={"source": source, "event_id": event_id})
        return True

    logger.info("receipt.recorded", extra={"source": source, "event_id": event_id})
    return False
