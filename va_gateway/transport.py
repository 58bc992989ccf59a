"""API Gateway HTTP API (payload v2.0) request parsing and response building."""

import base64
import json
from dataclasses import dataclass, field
from http.cookies import CookieError, SimpleCookie
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import parse_qs

from va_gateway.config import Settings

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

ALLOWED_METHODS = ("GET", "POST", "OPTIONS")


@dataclass
class Request:
    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    @property
    def content_type(self) -> str:
        return (self.header("content-type") or "").split(";")[0].strip().lower()

    @property
    def origin(self) -> Optional[str]:
        return self.header("origin")

    @classmethod
    def from_event(cls, event: Dict[str, Any]) -> "Request":
        http = event.get("requestContext", {}).get("http", {})
        method = (http.get("method") or event.get("httpMethod") or "GET").upper()
        path = event.get("rawPath") or http.get("path") or event.get("path") or "/"
        if len(path) > 1:
            path = path.rstrip("/")

        headers = {str(k).lower(): str(v) for k, v in (event.get("headers") or {}).items()}

        query = {}
        if event.get("rawQueryString"):
            query = {k: v[0] for k, v in parse_qs(event["rawQueryString"]).items() if v}
        elif event.get("queryStringParameters"):
            query = dict(event["queryStringParameters"])

        raw_cookies: List[str] = list(event.get("cookies") or [])
        if not raw_cookies and headers.get("cookie"):
            raw_cookies = [headers["cookie"]]

        body = event.get("body") or ""
        if event.get("isBase64Encoded"):
            raw_body = base64.b64decode(body)
        else:
            raw_body = body.encode("utf-8") if isinstance(body, str) else bytes(body)

        return cls(
            method=method,
            path=path,
            headers=headers,
            query=query,
            cookies=parse_cookies(raw_cookies),
            body=raw_body,
        )


def parse_cookies(raw_cookies: Iterable[str]) -> Dict[str, str]:
    cookies: Dict[str, str] = {}
    for raw in raw_cookies:
        jar = SimpleCookie()
        try:
            jar.load(raw)
        except CookieError:
            continue
        for name, morsel in jar.items():
            cookies.setdefault(name, morsel.value)
    return cookies


def json_response(
    status: int,
    body: Any,
    headers: Optional[Dict[str, str]] = None,
    cookies: Optional[List[str]] = None,
) -> Dict[str, Any]:
    resp: Dict[str, Any] = {
        "statusCode": status,
        "headers": {"Content-Type": JSON_CONTENT_TYPE, **(headers or {})},
        "body": json.dumps(body),
    }
    if cookies:
        resp["cookies"] = cookies
    return resp


def raw_json_response(status: int, body: bytes) -> Dict[str, Any]:
    """Stored JSON returned verbatim."""
    return {
        "statusCode": status,
        "headers": {"Content-Type": JSON_CONTENT_TYPE},
        "body": body.decode("utf-8"),
    }


def redirect_response(location: str, cookies: Optional[List[str]] = None) -> Dict[str, Any]:
    resp: Dict[str, Any] = {
        "statusCode": 302,
        "headers": {"Location": location, "Cache-Control": "no-store"},
        "body": "",
    }
    if cookies:
        resp["cookies"] = cookies
    return resp


def cors_headers(settings: Settings, origin: Optional[str], preflight: bool = False) -> Dict[str, str]:
    """CORS headers for allow-listed origins only; everyone else gets none."""
    if not origin or origin.rstrip("/") not in settings.cors_allowed_origins:
        return {}
    headers = {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }
    if preflight:
        headers.update(
            {
                "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
                "Access-Control-Allow-Headers": "Content-Type",
                "Access-Control-Max-Age": "600",
            }
        )
    return headers


def parse_json_body(request: Request) -> Any:
    """Decoded JSON body; raises ValueError on malformed input."""
    return json.loads(request.body.decode("utf-8"))


def parse_form_body(request: Request) -> Dict[str, str]:
    """Form fields with blank values dropped; first value wins on repeats."""
    text = request.body.decode("utf-8")
    return {k: v[0] for k, v in parse_qs(text, keep_blank_values=False).items() if v}
