"""
Magic-link login tokens and server-side sessions.

    login-requested -> token-issued -> token-consumed (session created)
                    -> session-active -> session-revoked

Tokens are stored by SHA-256 hash only. The session cookie is
`base64url(JSON{sessionId, expiresAt}) + "." + hex(HMAC-SHA256(secret, b64))`;
a valid signature is necessary but not sufficient, the stored session record
decides (revocation and expiry always win).
"""

import base64
import binascii
import hashlib
import hmac
import json
import re
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from va_gateway.accounts import account_for_email, email_hash
from va_gateway.errors import ConflictError
from va_gateway.store import ObjectStore
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.sessions")

TOKEN_TTL = timedelta(minutes=15)
SESSION_TTL = timedelta(days=7)

COOKIE_NAME = "vlp_session"
COOKIE_ATTRIBUTES = "HttpOnly; Secure; SameSite=Lax; Path=/"
COOKIE_MAX_AGE = int(SESSION_TTL.total_seconds())

_SESSION_ID_RE = re.compile(r"^sess_[0-9a-f]{32}$")

# (email, raw_token, confirm_url) -> None
LoginLinkSender = Callable[[str, str, str], None]


class AuthError(Exception):
    """Token or session rejected; rendered as 401."""


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def token_key(token_hash: str) -> str:
    return f"auth/login-tokens/{token_hash}.json"


def session_key(session_id: str) -> str:
    return f"auth/sessions/{session_id}.json"


def _parse_ts(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _expired(record: Dict[str, Any], now: datetime) -> bool:
    expires_at = _parse_ts(record.get("expiresAt"))
    return expires_at is None or expires_at <= now


def log_login_link(email: str, raw_token: str, confirm_url: str) -> None:
    """Default sender: delivery happens out of band, so only record the issue."""
    logger.info(
        "auth.login_link_issued",
        extra={"email_hash": email_hash(email), "token_hash": hash_token(raw_token)},
    )


# ---------------------------------------------------------------------------
# Login tokens
# ---------------------------------------------------------------------------


def issue_login_token(store: ObjectStore, email: str, now: datetime) -> Tuple[str, Dict[str, Any]]:
    """Create a single-use token for `email`; returns (raw_token, stored record)."""
    raw_token = secrets.token_urlsafe(32)
    token_hash = hash_token(raw_token)
    record = {
        "accountId": account_for_email(store, email),
        "createdAt": now.isoformat(),
        "email": email,
        "expiresAt": (now + TOKEN_TTL).isoformat(),
        "tokenHash": token_hash,
        "usedAt": None,
    }
    store.put_json(token_key(token_hash), record, if_none_match=True)
    logger.info(
        "auth.token_issued",
        extra={"token_hash": token_hash, "account_resolved": record["accountId"] is not None},
    )
    return raw_token, record


def consume_login_token(store: ObjectStore, raw_token: str, now: datetime) -> Dict[str, Any]:
    """
    Mark the token used and create a session for it.

    Raises AuthError when the token is unknown, already used or expired. The
    used-mark is a conditional write, so two concurrent confirms cannot both
    succeed.
    """
    token_hash = hash_token(raw_token)
    key = token_key(token_hash)
    stored = store.get(key)
    record = stored.doc if stored is not None else None
    if record is None:
        raise AuthError("Invalid token")
    if record.get("usedAt"):
        raise AuthError("Token already used")
    if _expired(record, now):
        raise AuthError("Token expired")

    used = dict(record)
    used["usedAt"] = now.isoformat()
    try:
        store.put_json(key, used, if_match=stored.etag)
    except ConflictError as e:
        raise AuthError("Token already used") from e

    session = {
        "accountId": record.get("accountId"),
        "createdAt": now.isoformat(),
        "email": record.get("email"),
        "expiresAt": (now + SESSION_TTL).isoformat(),
        "revokedAt": None,
        "sessionId": f"sess_{secrets.token_hex(16)}",
        "tokenHash": token_hash,
    }
    store.put_json(session_key(session["sessionId"]), session, if_none_match=True)
    logger.info(
        "auth.session_created",
        extra={"session_id": session["sessionId"], "account_id": session["accountId"]},
    )
    return session


# ---------------------------------------------------------------------------
# Session cookie
# ---------------------------------------------------------------------------


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _sign(secret: str, payload: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def encode_session_cookie(secret: str, session_id: str, expires_at: str) -> str:
    claims = json.dumps({"expiresAt": expires_at, "sessionId": session_id}, separators=(",", ":"))
    payload = _b64url_encode(claims.encode("utf-8"))
    return f"{payload}.{_sign(secret, payload)}"


def decode_session_cookie(secret: str, value: str) -> Optional[Dict[str, Any]]:
    """Verified cookie claims, or None when the cookie is malformed or tampered."""
    parts = value.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    payload, signature = parts

    expected = _sign(secret, payload)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
        return None

    try:
        claims = json.loads(_b64url_decode(payload))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(claims, dict):
        return None
    session_id = claims.get("sessionId")
    if not isinstance(session_id, str) or not _SESSION_ID_RE.match(session_id):
        return None
    return claims


def set_cookie_header(value: str) -> str:
    return f"{COOKIE_NAME}={value}; {COOKIE_ATTRIBUTES}; Max-Age={COOKIE_MAX_AGE}"


def clear_cookie_header() -> str:
    return f"{COOKIE_NAME}=; {COOKIE_ATTRIBUTES}; Max-Age=0"


def resolve_session(
    store: ObjectStore,
    secret: str,
    cookie_value: Optional[str],
    now: datetime,
) -> Optional[Dict[str, Any]]:
    """The active session record behind `cookie_value`, or None."""
    if not cookie_value:
        return None
    claims = decode_session_cookie(secret, cookie_value)
    if claims is None:
        logger.info("auth.cookie_rejected")
        return None
    if _expired(claims, now):
        return None

    record = store.get_json(session_key(claims["sessionId"]))
    if record is None or record.get("revokedAt") or _expired(record, now):
        return None
    return record


def revoke_session(store: ObjectStore, session_id: str, now: datetime) -> bool:
    """Soft revoke: stamp `revokedAt`, keep the record. Returns False if absent."""

    def mutate(current):
        if current is None:
            return None
        if current.get("revokedAt"):
            return current
        updated = dict(current)
        updated["revokedAt"] = now.isoformat()
        return updated

    revoked = store.update_json(session_key(session_id), mutate) is not None
    if revoked:
        logger.info("auth.session_revoked", extra={"session_id": session_id})
    return revoked
