"""
Stripe-style webhook signature verification.

Header format: `t=<unix-seconds>,v1=<hex-hmac>[,v1=<hex-hmac>...]`.
The signed payload is `"{t}.{raw_body}"` under HMAC-SHA256; any `v1`
candidate may match, which is how secret rotation is supported.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_TOLERANCE_SECONDS = 300

MISSING_TIMESTAMP = "Missing timestamp"
MISSING_V1 = "Missing v1 signature"
OUTSIDE_TOLERANCE = "Timestamp outside tolerance"
MISMATCH = "Signature mismatch"


@dataclass
class SignatureHeader:
    timestamp: Optional[int] = None
    v1: List[str] = field(default_factory=list)


@dataclass
class Verification:
    ok: bool
    reason: Optional[str] = None


def parse_signature_header(header: str) -> SignatureHeader:
    out = SignatureHeader()
    for item in header.split(","):
        k, sep, v = item.partition("=")
        k, v = k.strip(), v.strip()
        if not sep or not k or not v:
            continue
        if k == "t":
            try:
                out.timestamp = int(v)
            except ValueError:
                continue
        elif k == "v1":
            out.v1.append(v)
    return out


def compute_signature(secret: str, timestamp: int, raw_body: bytes) -> str:
    signed = f"{timestamp}.".encode("utf-8") + raw_body
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_signature(
    raw_body: bytes,
    secret: str,
    header: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> Verification:
    parts = parse_signature_header(header)
    if parts.timestamp is None:
        return Verification(False, MISSING_TIMESTAMP)
    if not parts.v1:
        return Verification(False, MISSING_V1)

    now_seconds = int(time.time() if now is None else now)
    if abs(now_seconds - parts.timestamp) > tolerance:
        return Verification(False, OUTSIDE_TOLERANCE)

    expected = compute_signature(secret, parts.timestamp, raw_body)
    for candidate in parts.v1:
        if hmac.compare_digest(expected.encode("ascii"), candidate.lower().encode("utf-8")):
            return Verification(True)

    return Verification(False, MISMATCH)
