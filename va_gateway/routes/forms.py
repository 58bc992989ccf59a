"""
Authenticated form submissions.

Both routes follow the webhook's write order: validate -> receipt ->
canonical -> projection. Identity always comes from the session; an
`accountId` in the body is an unknown field and is rejected.
"""

from va_gateway import directory, support
from va_gateway.errors import HttpError
from va_gateway.results import Invalid, MutationResult, SkipReason
from va_gateway.routes.auth import require_session
from va_gateway.schemas import PublishForm, SupportMessage, split_utm, validate
from va_gateway.store import dump_json
from va_gateway.transport import json_response, parse_form_body, parse_json_body
from va_gateway.utils.idempotency import receipt_key, was_processed
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.forms")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _belongs_to(doc, session) -> bool:
    """Whether a stored thread or receipt was written by the session's owner."""
    if doc.get("accountId") is not None:
        return doc.get("accountId") == session.get("accountId")
    return doc.get("email") is not None and doc.get("email") == session.get("email")


def support_message(request, ctx):
    """POST /forms/support/message (strict JSON)."""
    session = require_session(request, ctx)
    if request.content_type != "application/json":
        raise HttpError(415, "Unsupported content type", expected="application/json")

    try:
        data = parse_json_body(request)
    except ValueError:
        raise HttpError(400, "Invalid JSON") from None
    if not isinstance(data, dict):
        raise HttpError(400, "Expected a JSON object")

    split = split_utm(data)
    if isinstance(split, Invalid):
        raise HttpError(400, split.reason, field=split.field)
    fields, utm = split.payload

    parsed = validate(SupportMessage, fields)
    if isinstance(parsed, Invalid):
        raise HttpError(400, parsed.reason, field=parsed.field)
    msg = parsed.payload

    store = ctx.store()
    now = ctx.now()
    account_id = session.get("accountId")

    if msg.supportId:
        thread = support.load_thread(store, msg.supportId)
        if thread is None or not _belongs_to(thread, session):
            raise HttpError(404, "Support thread not found", supportId=msg.supportId)
        support_id = msg.supportId
    else:
        support_id = support.support_id_for(msg.eventId)

    receipt = dump_json(
        {
            "accountId": account_id,
            "email": session.get("email"),
            "payload": msg.model_dump(),
            "receivedAt": now.isoformat(),
            "sessionId": session.get("sessionId"),
            "supportId": support_id,
            "utm": utm,
        }
    )
    if was_processed(store, support.SOURCE, msg.eventId, receipt):
        result = MutationResult.skipped(SkipReason.DEDUPED)
        body = {**result.to_body(), "eventId": msg.eventId}
        prior = store.get_json(receipt_key(support.SOURCE, msg.eventId))
        if prior is not None and _belongs_to(prior, session):
            body["supportId"] = prior.get("supportId", support_id)
        return json_response(200, body)

    try:
        result = support.record_submission(
            store,
            support_id,
            account_id,
            msg,
            utm,
            now,
            email=session.get("email"),
            tracker=ctx.tracker,
            list_id=ctx.settings.task_tracker_support_list_id,
        )
    except Exception as e:
        logger.exception(
            "support.canonical_failed",
            extra={"event_id": msg.eventId, "support_id": support_id, "error": str(e)},
        )
        result = MutationResult.skipped(SkipReason.CANONICAL_WRITE_FAILED, supportId=support_id)

    return json_response(200, {**result.to_body(), "eventId": msg.eventId, "supportId": support_id})


def va_publish(request, ctx):
    """POST /forms/va/publish (form-urlencoded)."""
    session = require_session(request, ctx)
    account_id = session.get("accountId")
    if not account_id:
        raise HttpError(403, "Account required")

    if request.content_type != FORM_CONTENT_TYPE:
        raise HttpError(415, "Unsupported content type", expected=FORM_CONTENT_TYPE)
    try:
        form = parse_form_body(request)
    except UnicodeDecodeError:
        raise HttpError(400, "Invalid form body") from None

    parsed = validate(PublishForm, form)
    if isinstance(parsed, Invalid):
        raise HttpError(400, parsed.reason, field=parsed.field)
    profile = parsed.payload

    store = ctx.store()
    now = ctx.now()

    owner = directory.slug_owner(store, profile.slug)
    if owner is not None and owner != account_id:
        raise HttpError(409, "Slug already taken", slug=profile.slug)

    receipt = dump_json(
        {
            "accountId": account_id,
            "payload": profile.model_dump(),
            "receivedAt": now.isoformat(),
            "sessionId": session.get("sessionId"),
        }
    )
    if was_processed(store, directory.SOURCE, profile.eventId, receipt):
        result = MutationResult.skipped(SkipReason.DEDUPED)
        return json_response(200, {**result.to_body(), "eventId": profile.eventId, "slug": profile.slug})

    try:
        result = directory.publish_profile(store, account_id, profile, now)
    except Exception as e:
        logger.exception(
            "directory.canonical_failed",
            extra={"event_id": profile.eventId, "slug": profile.slug, "error": str(e)},
        )
        result = MutationResult.skipped(SkipReason.CANONICAL_WRITE_FAILED)

    return json_response(200, {**result.to_body(), "eventId": profile.eventId, "slug": profile.slug})
