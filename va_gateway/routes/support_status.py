import re

from va_gateway import support
from va_gateway.errors import HttpError
from va_gateway.schemas import SUPPORT_ID_PATTERN
from va_gateway.transport import json_response

_SUPPORT_ID_RE = re.compile(SUPPORT_ID_PATTERN)


def handle(request, ctx):
    """GET /support/status?supportId=SUP-XXXXXXXX"""
    support_id = (request.query.get("supportId") or "").strip().upper()
    if not support_id:
        raise HttpError(400, "Missing supportId")
    if not _SUPPORT_ID_RE.match(support_id):
        raise HttpError(400, "Invalid supportId", supportId=support_id)

    thread = support.load_thread(ctx.store(), support_id)
    if thread is None:
        raise HttpError(404, "Support thread not found", supportId=support_id)
    return json_response(200, support.thread_status(thread))
