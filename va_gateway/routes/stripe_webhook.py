"""
POST /stripe/webhook

Write order: signature -> receipt -> canonical -> projection (best effort).
Anything rejected before the receipt write is reported as an error; once the
receipt exists the sender always sees 200 so it stops retrying.
"""

import json

from va_gateway import accounts
from va_gateway.errors import HttpError
from va_gateway.results import Invalid, MutationResult, SkipReason
from va_gateway.schemas import StripeEnvelope, validate
from va_gateway.transport import json_response
from va_gateway.utils.idempotency import was_processed
from va_gateway.utils.logger import get_logger
from va_gateway.utils.signature import verify_signature

logger = get_logger("va_gateway.webhook")


def handle(request, ctx):
    signature = request.header("stripe-signature")
    if not signature:
        raise HttpError(400, "Missing Stripe-Signature header")

    secret = ctx.settings.require("stripe_webhook_secret")
    now = ctx.now()

    # 1) Signature over the raw bytes, before anything is parsed
    verified = verify_signature(request.body, secret, signature, now=now.timestamp())
    if not verified.ok:
        logger.warning("webhook.signature_rejected", extra={"reason": verified.reason})
        raise HttpError(400, "Invalid Stripe signature", reason=verified.reason)

    try:
        evt = json.loads(request.body.decode("utf-8"))
    except ValueError:
        raise HttpError(400, "Invalid JSON") from None

    envelope = validate(StripeEnvelope, evt)
    if isinstance(envelope, Invalid):
        if envelope.field == "id":
            raise HttpError(400, "Missing event id")
        raise HttpError(400, envelope.reason, field=envelope.field)
    envelope = envelope.payload
    event_id, event_type = envelope.id, envelope.type

    parsed = accounts.parse_payment_object(envelope)
    if isinstance(parsed, Invalid):
        raise HttpError(400, parsed.reason, field=parsed.field, eventId=event_id, eventType=event_type)

    store = ctx.store()

    # 2) Receipt (write-once); its presence alone means "already processed"
    if was_processed(store, accounts.PROVIDER, event_id, request.body):
        result = MutationResult.skipped(SkipReason.DEDUPED)
        return json_response(200, {**result.to_body(), "eventId": event_id, "eventType": event_type})

    if parsed is None:
        logger.info("webhook.ignored_type", extra={"event_id": event_id, "event_type": event_type})
        result = MutationResult.skipped(SkipReason.IGNORED_EVENT_TYPE, ignoredType=event_type, storedReceipt=True)
        return json_response(200, {**result.to_body(), "eventId": event_id, "eventType": event_type})

    # 3) Canonical upsert + 4) projection
    try:
        result = accounts.apply_payment_event(
            store,
            event_id,
            event_type,
            parsed.payload,
            now,
            tracker=ctx.tracker,
            accounts_list_id=ctx.settings.task_tracker_accounts_list_id,
        )
    except Exception as e:
        # The receipt is durable; a retry would be deduped, so report success.
        logger.exception(
            "webhook.canonical_failed",
            extra={"event_id": event_id, "event_type": event_type, "error": str(e)},
        )
        result = MutationResult.skipped(SkipReason.CANONICAL_WRITE_FAILED)

    logger.info(
        "webhook.processed",
        extra={
            "event_id": event_id,
            "event_type": event_type,
            "applied": result.applied,
            "reason": result.reason.value if result.reason else None,
        },
    )
    return json_response(
        200,
        {**result.to_body(), "eventId": event_id, "eventType": event_type, "storedReceipt": True},
    )
