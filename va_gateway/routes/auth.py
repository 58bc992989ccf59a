"""
Magic-link authentication routes.

    POST /auth/login     {email}          -> {ok: true}, token sent out of band
    GET  /auth/confirm   ?token=          -> 302 + session cookie
    GET  /auth/session   cookie optional  -> {authenticated, ...}
    POST /auth/logout    cookie optional  -> {ok: true} + cleared cookie
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

from va_gateway import sessions
from va_gateway.errors import HttpError
from va_gateway.results import Invalid
from va_gateway.schemas import LoginRequest, validate
from va_gateway.transport import json_response, parse_json_body, redirect_response
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.auth")

CONFIRM_PATH = "/auth/confirm"


def current_session(request, ctx) -> Optional[Dict[str, Any]]:
    """Active session for this request, resolved from the signed cookie only."""
    cookie = request.cookies.get(sessions.COOKIE_NAME)
    if not cookie:
        return None
    secret = ctx.settings.require("session_signing_secret")
    return sessions.resolve_session(ctx.store(), secret, cookie, ctx.now())


def require_session(request, ctx) -> Dict[str, Any]:
    session = current_session(request, ctx)
    if session is None:
        raise HttpError(401, "Authentication required")
    return session


def login(request, ctx):
    ctx.settings.require("session_signing_secret")
    try:
        data = parse_json_body(request)
    except ValueError:
        raise HttpError(400, "Invalid JSON") from None

    parsed = validate(LoginRequest, data)
    if isinstance(parsed, Invalid):
        raise HttpError(400, parsed.reason, field=parsed.field)
    email = parsed.payload.email

    raw_token, _ = sessions.issue_login_token(ctx.store(), email, ctx.now())
    base = ctx.settings.login_confirm_url or CONFIRM_PATH
    ctx.login_sender(email, raw_token, f"{base}?{urlencode({'token': raw_token})}")

    # Same answer whether or not the email belongs to an account
    return json_response(200, {"ok": True})


def confirm(request, ctx):
    secret = ctx.settings.require("session_signing_secret")
    token = request.query.get("token")
    if not token:
        raise HttpError(400, "Missing token")

    try:
        session = sessions.consume_login_token(ctx.store(), token, ctx.now())
    except sessions.AuthError as e:
        logger.info("auth.confirm_rejected", extra={"reason": str(e)})
        raise HttpError(401, str(e)) from None

    cookie = sessions.encode_session_cookie(secret, session["sessionId"], session["expiresAt"])
    return redirect_response(ctx.settings.login_redirect_url, cookies=[sessions.set_cookie_header(cookie)])


def session(request, ctx):
    active = current_session(request, ctx)
    if active is None:
        return json_response(200, {"authenticated": False})
    return json_response(
        200,
        {
            "authenticated": True,
            "accountId": active.get("accountId"),
            "email": active.get("email"),
            "expiresAt": active.get("expiresAt"),
        },
    )


def logout(request, ctx):
    active = current_session(request, ctx)
    if active is not None:
        sessions.revoke_session(ctx.store(), active["sessionId"], ctx.now())
    return json_response(200, {"ok": True}, cookies=[sessions.clear_cookie_header()])
