"""Exceptions shared by the gateway's routes, services and object store."""

from typing import Any


class HttpError(Exception):
    """An error the transport layer renders as a JSON error response."""

    def __init__(self, status: int, error: str, **details: Any):
        super().__init__(error)
        self.status = status
        self.error = error
        self.details = details


class ConfigError(RuntimeError):
    """A required binding or secret is missing; requests fail closed."""


class StoreError(RuntimeError):
    """The object store failed in a way callers cannot recover from."""


class ConflictError(StoreError):
    """A conditional write lost against a concurrent writer."""
