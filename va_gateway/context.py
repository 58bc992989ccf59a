from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from va_gateway.config import Settings
from va_gateway.projection import TaskTrackerClient, build_task_tracker
from va_gateway.sessions import LoginLinkSender, log_login_link
from va_gateway.store import ObjectStore


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GatewayContext:
    """
    Everything a route needs, built once per container and passed explicitly.

    `s3_client` and `tracker` are injectable so tests can run the real routes
    against stubs.
    """

    settings: Settings
    s3_client: Any = None
    tracker: Optional[TaskTrackerClient] = None
    clock: Callable[[], datetime] = utcnow
    login_sender: LoginLinkSender = field(default=log_login_link)

    def store(self) -> ObjectStore:
        return ObjectStore(self.settings.require("object_store_bucket"), self.s3_client)

    def now(self) -> datetime:
        return self.clock()


def build_context(settings: Settings) -> GatewayContext:
    return GatewayContext(settings=settings, tracker=build_task_tracker(settings))
