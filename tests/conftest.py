import json
from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import ClientError

from va_gateway.config import Settings
from va_gateway.context import GatewayContext
from va_gateway.handler import dispatch
from va_gateway.transport import Request
from va_gateway.utils.signature import compute_signature

WEBHOOK_SECRET = "whsec_test"
SIGNING_SECRET = "signing-secret-test"
ALLOWED_ORIGIN = "https://virtuallaunch.pro"
NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


def _client_error(code, operation):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class StubBody:
    def __init__(self, data):
        self._data = data

    def read(self):
        return self._data


class StubS3:
    """In-memory S3 honouring ETag, If-Match and If-None-Match."""

    def __init__(self):
        self.objects = {}
        self.puts = []
        self.fail_prefixes = set()
        self._version = 0

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        body, etag = self.objects[Key]
        return {"Body": StubBody(body), "ETag": etag}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise _client_error("404", "HeadObject")
        return {"ETag": self.objects[Key][1]}

    def put_object(self, Bucket, Key, Body, ContentType=None, IfMatch=None, IfNoneMatch=None):
        if any(Key.startswith(p) for p in self.fail_prefixes):
            raise _client_error("InternalError", "PutObject")
        current = self.objects.get(Key)
        if IfNoneMatch == "*" and current is not None:
            raise _client_error("PreconditionFailed", "PutObject")
        if IfMatch is not None and (current is None or current[1] != IfMatch):
            raise _client_error("PreconditionFailed", "PutObject")
        self._version += 1
        etag = f'"{self._version}"'
        self.objects[Key] = (bytes(Body), etag)
        self.puts.append(Key)
        return {"ETag": etag}

    def doc(self, key):
        return json.loads(self.objects[key][0])

    def keys(self, prefix=""):
        return sorted(k for k in self.objects if k.startswith(prefix))


class StubTracker:
    def __init__(self, fail=False):
        self.fail = fail
        self.tasks = []
        self.comments = []

    def create_task(self, list_id, name, description):
        from va_gateway.projection import ProjectionError

        if self.fail:
            raise ProjectionError("tracker returned HTTP 503 for /list/x/task", status_code=503)
        self.tasks.append({"list_id": list_id, "name": name, "description": description})
        return f"task-{len(self.tasks)}"

    def add_comment(self, task_id, text):
        from va_gateway.projection import ProjectionError

        if self.fail:
            raise ProjectionError("tracker returned HTTP 503 for /task/x/comment", status_code=503)
        self.comments.append({"task_id": task_id, "text": text})


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class Outbox:
    def __init__(self):
        self.sent = []

    def __call__(self, email, raw_token, confirm_url):
        self.sent.append({"email": email, "token": raw_token, "url": confirm_url})

    @property
    def last_token(self):
        return self.sent[-1]["token"]


@pytest.fixture
def settings():
    return Settings(
        object_store_bucket="va-test-bucket",
        stripe_webhook_secret=WEBHOOK_SECRET,
        session_signing_secret=SIGNING_SECRET,
        cors_allowed_origins=frozenset({ALLOWED_ORIGIN}),
        login_confirm_url="https://api.virtuallaunch.pro/auth/confirm",
        task_tracker_support_list_id="list-support",
        task_tracker_accounts_list_id="list-accounts",
    )


@pytest.fixture
def s3():
    return StubS3()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def ctx(settings, s3, clock, outbox):
    return GatewayContext(settings=settings, s3_client=s3, clock=clock, login_sender=outbox)


def api_event(method, path, body=None, headers=None, query=None, cookies=None):
    event = {
        "version": "2.0",
        "rawPath": path,
        "rawQueryString": "&".join(f"{k}={v}" for k, v in (query or {}).items()),
        "headers": headers or {},
        "requestContext": {"http": {"method": method, "path": path}},
        "isBase64Encoded": False,
    }
    if body is not None:
        event["body"] = body if isinstance(body, str) else body.decode("utf-8")
    if cookies:
        event["cookies"] = cookies
    return event


class Response:
    def __init__(self, raw):
        self.raw = raw
        self.status = raw["statusCode"]
        self.headers = raw.get("headers", {})
        self.cookies = raw.get("cookies", [])
        self.body = json.loads(raw["body"]) if raw.get("body") else None


@pytest.fixture
def call(ctx):
    def _call(method, path, body=None, headers=None, query=None, cookies=None):
        event = api_event(method, path, body=body, headers=headers, query=query, cookies=cookies)
        return Response(dispatch(Request.from_event(event), ctx))

    return _call


def sign(body, timestamp, secret=WEBHOOK_SECRET):
    raw = body.encode("utf-8") if isinstance(body, str) else body
    return f"t={timestamp},v1={compute_signature(secret, timestamp, raw)}"


@pytest.fixture
def post_webhook(call, clock):
    def _post(evt, timestamp=None):
        body = json.dumps(evt)
        ts = int(clock.now.timestamp()) if timestamp is None else timestamp
        return call(
            "POST",
            "/stripe/webhook",
            body=body,
            headers={"stripe-signature": sign(body, ts), "content-type": "application/json"},
        )

    return _post


def checkout_event(event_id="evt_checkout_1", payment_intent="pi_1", email="va@example.com", **extra):
    obj = {
        "id": "cs_test_1",
        "object": "checkout.session",
        "customer": "cus_1",
        "payment_intent": payment_intent,
        "payment_link": "plink_1",
        "payment_status": "paid",
        "status": "complete",
        "customer_details": {"email": email},
    }
    obj.update(extra)
    return {"id": event_id, "type": "checkout.session.completed", "data": {"object": obj}}


def payment_intent_event(event_id="evt_pi_1", payment_intent="pi_1", status="succeeded"):
    return {
        "id": event_id,
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": payment_intent, "object": "payment_intent", "status": status}},
    }


def charge_event(event_id="evt_ch_1", payment_intent="pi_1", receipt_url="https://pay.stripe.com/receipts/r1"):
    return {
        "id": event_id,
        "type": "charge.succeeded",
        "data": {
            "object": {
                "id": "ch_1",
                "object": "charge",
                "payment_intent": payment_intent,
                "receipt_url": receipt_url,
                "status": "succeeded",
            }
        },
    }


@pytest.fixture
def login_as(call, outbox):
    """Run the magic-link flow and return a Cookie header value for the session."""

    def _login(email="va@example.com"):
        resp = call("POST", "/auth/login", body=json.dumps({"email": email}),
                    headers={"content-type": "application/json"})
        assert resp.status == 200
        confirm = call("GET", "/auth/confirm", query={"token": outbox.last_token})
        assert confirm.status == 302
        return confirm.cookies[0].split(";")[0]

    return _login
