from va_gateway.transport import json_response
from va_gateway.utils.logger import get_logger

log = get_logger("va_gateway.health")


def handle(request, ctx):
    log.debug("health.check", extra={"path": request.path, "method": request.method})
    return json_response(200, {"ok": True, "route": "health"})
