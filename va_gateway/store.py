"""
S3-backed object store: the gateway's single source of truth.

Keys are flat strings (`accounts/acct_pi_123.json`); values are JSON
documents. There are no transactions. Conditional writes (`If-Match` on the
ETag read, `If-None-Match: *` on create) give optimistic concurrency for
read-modify-write and write-once semantics for receipts.
"""

import json
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from va_gateway.errors import ConflictError, StoreError
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.store")

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}
_CONFLICT_CODES = {"412", "PreconditionFailed", "409", "ConditionalRequestConflict"}


@dataclass
class StoredObject:
    key: str
    body: bytes
    etag: Optional[str]

    @property
    def doc(self) -> Optional[Dict[str, Any]]:
        """Parsed JSON object, or None when the stored bytes are not a JSON object."""
        try:
            parsed = json.loads(self.body)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("store.unparseable_object", extra={"key": self.key})
            return None
        return parsed if isinstance(parsed, dict) else None


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


def dump_json(doc: Any) -> bytes:
    return json.dumps(doc, indent=2, sort_keys=True).encode("utf-8")


@lru_cache(maxsize=1)
def _default_s3_client():
    # Reuse the client across invocations of a warm container
    return boto3.client("s3")


class ObjectStore:
    def __init__(self, bucket: str, client=None):
        self.bucket = bucket
        self._s3 = client if client is not None else _default_s3_client()

    def get(self, key: str) -> Optional[StoredObject]:
        try:
            resp = self._s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None
            logger.error("store.get_failed", extra={"key": key, "code": _error_code(e)})
            raise StoreError(f"get {key} failed: {_error_code(e)}") from e
        return StoredObject(key=key, body=resp["Body"].read(), etag=resp.get("ETag"))

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        obj = self.get(key)
        return obj.doc if obj is not None else None

    def exists(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return False
            logger.error("store.head_failed", extra={"key": key, "code": _error_code(e)})
            raise StoreError(f"head {key} failed: {_error_code(e)}") from e
        return True

    def put(
        self,
        key: str,
        body: bytes,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> None:
        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "ContentType": JSON_CONTENT_TYPE,
        }
        if if_match is not None:
            params["IfMatch"] = if_match
        elif if_none_match:
            params["IfNoneMatch"] = "*"

        try:
            self._s3.put_object(**params)
        except ClientError as e:
            code = _error_code(e)
            if code in _CONFLICT_CODES:
                raise ConflictError(f"conditional put {key} lost: {code}") from e
            logger.error("store.put_failed", extra={"key": key, "code": code})
            raise StoreError(f"put {key} failed: {code}") from e

    def put_json(
        self,
        key: str,
        doc: Dict[str, Any],
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> None:
        self.put(key, dump_json(doc), if_match=if_match, if_none_match=if_none_match)

    def update_json(
        self,
        key: str,
        mutate: Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]],
        attempts: int = 3,
    ) -> Optional[Dict[str, Any]]:
        """
        Read-modify-write one document under optimistic concurrency.

        `mutate` receives the current document (None when absent or
        unparseable) and returns the document to write, or None to leave the
        key untouched. On a lost conditional write the whole cycle is re-run
        against a fresh read, up to `attempts` times.
        """
        for attempt in range(1, attempts + 1):
            current = self.get(key)
            doc = mutate(current.doc if current is not None else None)
            if doc is None:
                return None
            try:
                if current is not None:
                    self.put_json(key, doc, if_match=current.etag)
                else:
                    self.put_json(key, doc, if_none_match=True)
                return doc
            except ConflictError:
                logger.warning(
                    "store.write_conflict",
                    extra={"key": key, "attempt": attempt, "attempts": attempts},
                )
                if attempt == attempts:
                    raise
        return None
