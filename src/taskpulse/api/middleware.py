"""
HTTP middleware: error mapping, bearer authentication and CORS.
"""

import asyncio
from typing import Optional

from aiohttp import web
from loguru import logger

from ..errors import TaskPulseError, Unauthorized

CONTAINER = web.AppKey("container")

# Routes reachable without a bearer token
PUBLIC_PATHS = frozenset({
    "/health",
    "/ready",
    "/api/auth/login",
    "/api/auth/refresh",
})


def bearer_token(request: web.Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[7:].strip() or None


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Map TaskPulseError (and anything unexpected) to a JSON error response."""
    production = request.app[CONTAINER].settings.is_production
    try:
        return await handler(request)

    except TaskPulseError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message} {e.details}")
        else:
            logger.debug(f"{request.method} {request.path} -> {e.status} {e.message}")
        return web.json_response(e.to_dict(include_details=not production), status=e.status)

    except web.HTTPException:
        raise

    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        body = {"message": "Internal server error"}
        if not production:
            body["details"] = {"error": str(e)}
        return web.json_response(body, status=500)


@web.middleware
async def auth_middleware(request: web.Request, handler):
    """Resolve the bearer token to a Principal for every non-public route."""
    if request.method == "OPTIONS" or request.path in PUBLIC_PATHS:
        return await handler(request)

    token = bearer_token(request)
    if not token:
        raise Unauthorized("No token provided")

    user_manager = request.app[CONTAINER].user_manager
    request["principal"] = await asyncio.to_thread(user_manager.authenticate, token)
    return await handler(request)


@web.middleware
async def cors_middleware(request: web.Request, handler):
    """Add CORS headers to all responses."""
    if request.method == "OPTIONS":
        response = web.Response()
    else:
        response = await handler(request)

    response.headers["Access-Control-Allow-Origin"] = "*"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    return response
