from va_gateway.directory import INDEX_KEY
from va_gateway.transport import json_response, raw_json_response


def handle(request, ctx):
    """GET /directory: the stored index verbatim, or an empty directory."""
    obj = ctx.store().get(INDEX_KEY)
    if obj is None:
        return json_response(200, {"directory": []})
    return raw_json_response(200, obj.body)
