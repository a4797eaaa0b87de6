from collections.abc import Awaitable, Callable

from starlette.requests import Request
from starlette.responses import Response

from jobledger.core.config import get_settings

ALLOWED_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOWED_HEADERS = "Authorization, User-ID, Content-Type, Api-Key"
MAX_AGE_SECONDS = "86400"


def resolve_allowed_origin(origin: str | None, allowed_origins: list[str]) -> str:
    """Reflect a listed origin; anything else gets the first listed origin."""
    if origin and origin in allowed_origins:
        return origin
    return allowed_origins[0] if allowed_origins else ""


def cors_headers(origin: str | None, allowed_origins: list[str]) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": resolve_allowed_origin(origin, allowed_origins),
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Max-Age": MAX_AGE_SECONDS,
        "Vary": "Origin",
    }


async def cors_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    headers = cors_headers(request.headers.get("origin"), get_settings().cors_allowed_origins)

    if request.method == "OPTIONS":
        return Response(status_code=204, headers=headers)

    response = await call_next(request)
    response.headers.update(headers)
    return response
