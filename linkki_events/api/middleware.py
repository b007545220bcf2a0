"""Response middleware: JSON error bodies and CORS headers."""

import logging
from collections.abc import Awaitable, Callable

from aiohttp import web

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def error_body(status: int, message: str) -> dict[str, object]:
    return {"code": status, "message": f"{status} - {message}"}


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Render 404s and unexpected failures as the JSON error object.

    Other HTTP exceptions (405 and the like) pass through unchanged.
    """
    try:
        return await handler(request)
    except web.HTTPNotFound:
        return web.json_response(error_body(404, "Not found"), status=404)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error serving %s %s", request.method, request.path)
        return web.json_response(error_body(500, "Internal server error"), status=500)


async def add_cors_headers(_request: web.Request, response: web.StreamResponse) -> None:
    """on_response_prepare hook; covers raised HTTP exceptions too."""
    response.headers["Access-Control-Allow-Origin"] = "*"
