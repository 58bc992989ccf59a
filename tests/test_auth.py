import json

from conftest import SIGNING_SECRET, checkout_event

from va_gateway import sessions
from va_gateway.sessions import hash_token


def _login_request(call, email="va@example.com"):
    return call("POST", "/auth/login", body=json.dumps({"email": email}), headers={"content-type": "application/json"})


def test_login_stores_token_by_hash_only(call, outbox, s3):
    resp = _login_request(call)

    assert resp.status == 200
    assert resp.body == {"ok": True}
    raw = outbox.last_token
    record = s3.doc(f"auth/login-tokens/{hash_token(raw)}.json")
    assert record["usedAt"] is None
    assert record["expiresAt"] == "2026-10-19T12:15:00+00:00"
    assert raw not in json.dumps(record)
    assert outbox.sent[0]["url"].startswith("https://api.virtuallaunch.pro/auth/confirm?token=")


def test_login_resolves_account_from_payment_email(post_webhook, call, outbox, s3):
    post_webhook(checkout_event(email="VA@Example.com"))
    _login_request(call, "va@example.com")
    record = s3.doc(f"auth/login-tokens/{hash_token(outbox.last_token)}.json")
    assert record["accountId"] == "acct_pi_1"


def test_login_for_unknown_email_still_ok(call, outbox, s3):
    resp = _login_request(call, "nobody@example.com")
    assert resp.body == {"ok": True}
    assert s3.doc(f"auth/login-tokens/{hash_token(outbox.last_token)}.json")["accountId"] is None


def test_login_rejects_extra_fields(call):
    resp = call("POST", "/auth/login", body=json.dumps({"email": "va@example.com", "accountId": "acct_x"}))
    assert resp.status == 400
    assert resp.body == {"error": "Unknown field", "field": "accountId"}


def test_login_rejects_bad_email(call):
    resp = call("POST", "/auth/login", body=json.dumps({"email": "not-an-email"}))
    assert resp.status == 400
    assert resp.body["field"] == "email"


def test_confirm_sets_cookie_and_redirects(call, outbox, s3):
    _login_request(call)
    resp = call("GET", "/auth/confirm", query={"token": outbox.last_token})

    assert resp.status == 302
    assert resp.headers["Location"] == "/dashboard"
    cookie = resp.cookies[0]
    assert cookie.startswith("vlp_session=")
    for attr in ("HttpOnly", "Secure", "SameSite=Lax", "Path=/", "Max-Age=604800"):
        assert attr in cookie
    assert len(s3.keys("auth/sessions/")) == 1
    assert s3.doc(f"auth/login-tokens/{hash_token(outbox.last_token)}.json")["usedAt"] is not None


def test_confirm_token_single_use(call, outbox):
    _login_request(call)
    call("GET", "/auth/confirm", query={"token": outbox.last_token})
    again = call("GET", "/auth/confirm", query={"token": outbox.last_token})
    assert again.status == 401
    assert again.body["error"] == "Token already used"


def test_confirm_expired_token(call, outbox, clock):
    _login_request(call)
    clock.advance(minutes=16)
    resp = call("GET", "/auth/confirm", query={"token": outbox.last_token})
    assert resp.status == 401
    assert resp.body["error"] == "Token expired"


def test_confirm_unknown_and_missing_token(call):
    assert call("GET", "/auth/confirm", query={"token": "nope"}).body["error"] == "Invalid token"
    missing = call("GET", "/auth/confirm")
    assert missing.status == 400
    assert missing.body["error"] == "Missing token"


def test_session_reports_authenticated(call, login_as, post_webhook):
    post_webhook(checkout_event())
    cookie = login_as()
    resp = call("GET", "/auth/session", cookies=[cookie])
    assert resp.body["authenticated"] is True
    assert resp.body["accountId"] == "acct_pi_1"
    assert resp.body["email"] == "va@example.com"


def test_session_without_cookie(call):
    assert call("GET", "/auth/session").body == {"authenticated": False}


def test_tampered_cookie_signature_is_rejected(call, login_as):
    cookie = login_as()
    name, value = cookie.split("=", 1)
    payload, sig = value.split(".")
    flipped = sig[:-1] + ("0" if sig[-1] != "0" else "1")

    resp = call("GET", "/auth/session", cookies=[f"{name}={payload}.{flipped}"])
    assert resp.body == {"authenticated": False}


def test_forged_payload_with_foreign_session_id_rejected(call, login_as):
    login_as()
    forged = sessions.encode_session_cookie("wrong-secret", "sess_" + "0" * 32, "2099-01-01T00:00:00+00:00")
    resp = call("GET", "/auth/session", cookies=[f"vlp_session={forged}"])
    assert resp.body == {"authenticated": False}


def test_logout_revokes_server_side(call, login_as, s3):
    cookie = login_as()
    resp = call("POST", "/auth/logout", cookies=[cookie])

    assert resp.status == 200
    assert resp.body == {"ok": True}
    assert "Max-Age=0" in resp.cookies[0]
    session_doc = s3.doc(s3.keys("auth/sessions/")[0])
    assert session_doc["revokedAt"] is not None

    # The cookie is still cryptographically valid, but revocation wins
    assert call("GET", "/auth/session", cookies=[cookie]).body == {"authenticated": False}


def test_session_expires_after_seven_days(call, login_as, clock):
    cookie = login_as()
    clock.advance(days=7, seconds=1)
    assert call("GET", "/auth/session", cookies=[cookie]).body == {"authenticated": False}


def test_cookie_round_trip_helpers():
    value = sessions.encode_session_cookie(SIGNING_SECRET, "sess_" + "a" * 32, "2026-10-26T12:00:00+00:00")
    claims = sessions.decode_session_cookie(SIGNING_SECRET, value)
    assert claims == {"expiresAt": "2026-10-26T12:00:00+00:00", "sessionId": "sess_" + "a" * 32}
    assert sessions.decode_session_cookie(SIGNING_SECRET, value + ".extra") is None
