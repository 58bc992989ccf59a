"""
Lambda entry point: method allowlist, CORS, deny-by-default routing.

Routes (alphabetical):
  GET  /auth/confirm
  GET  /auth/session
  GET  /directory
  GET  /health
  GET  /support/status
  POST /auth/login
  POST /auth/logout
  POST /forms/support/message
  POST /forms/va/publish
  POST /stripe/webhook
"""

from typing import Optional

from botocore.exceptions import ClientError

from va_gateway.config import get_settings
from va_gateway.context import GatewayContext, build_context
from va_gateway.errors import ConfigError, HttpError, StoreError
from va_gateway.routes import auth, directory, forms, health, stripe_webhook, support_status
from va_gateway.transport import ALLOWED_METHODS, Request, cors_headers, json_response
from va_gateway.utils.logger import get_logger

logger = get_logger("va_gateway.handler")

ROUTES = {
    ("GET", "/auth/confirm"): auth.confirm,
    ("GET", "/auth/session"): auth.session,
    ("GET", "/directory"): directory.handle,
    ("GET", "/health"): health.handle,
    ("GET", "/support/status"): support_status.handle,
    ("POST", "/auth/login"): auth.login,
    ("POST", "/auth/logout"): auth.logout,
    ("POST", "/forms/support/message"): forms.support_message,
    ("POST", "/forms/va/publish"): forms.va_publish,
    ("POST", "/stripe/webhook"): stripe_webhook.handle,
}

_context: Optional[GatewayContext] = None


def get_context() -> GatewayContext:
    # Built once per container, like the AWS clients
    global _context
    if _context is None:
        _context = build_context(get_settings())
    return _context


def dispatch(request: Request, ctx: GatewayContext) -> dict:
    if request.method not in ALLOWED_METHODS:
        return json_response(405, {"error": "Method not allowed", "method": request.method})

    if request.method == "OPTIONS":
        return {
            "statusCode": 204,
            "headers": cors_headers(ctx.settings, request.origin, preflight=True),
            "body": "",
        }

    route = ROUTES.get((request.method, request.path))
    if route is None:
        resp = json_response(404, {"error": "Not found", "path": request.path})
    else:
        try:
            resp = route(request, ctx)
        except HttpError as e:
            resp = json_response(e.status, {"error": e.error, **e.details})
        except ConfigError as e:
            # Misconfiguration is a 500, not a 4xx
            logger.error("handler.config_error", extra={"path": request.path, "error": str(e)})
            resp = json_response(500, {"error": "server_misconfigured"})
        except StoreError as e:
            logger.error("handler.store_error", extra={"path": request.path, "error": str(e)})
            resp = json_response(500, {"error": "store_failure"})

    resp.setdefault("headers", {}).update(cors_headers(ctx.settings, request.origin))
    return resp


def lambda_handler(event, context):
    request = Request.from_event(event)
    logger.info(
        "handler.lambda_start",
        extra={
            "request_id": getattr(context, "aws_request_id", None),
            "method": request.method,
            "path": request.path,
        },
    )

    try:
        ctx = get_context()
    except (RuntimeError, ClientError) as e:
        logger.error("handler.context_error", extra={"error": str(e)})
        return json_response(500, {"error": "server_misconfigured"})

    resp = dispatch(request, ctx)
    logger.info(
        "handler.lambda_end",
        extra={"method": request.method, "path": request.path, "status": resp["statusCode"]},
    )
    return resp
