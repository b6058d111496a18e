"""CORS handling.

Every OPTIONS request, on any path and whether or not it is a browser
pre-flight, is answered ``204 No Content`` with the CORS headers before
it reaches routing. An origin that is not allowed gets the same 204
without an Allow-Origin header, which the browser treats as a refusal.
Other responses get their CORS headers from Starlette's CORSMiddleware.
Origins are either unrestricted (``*``) or limited to a fixed
allow-list.
"""

from typing import Optional, Sequence

from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

ALLOWED_METHODS = ("GET", "POST", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type", "Authorization")


class PreflightCORSMiddleware(CORSMiddleware):
    """CORSMiddleware that answers every OPTIONS request with ``204 No Content``."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["method"] == "OPTIONS":
            headers = Headers(scope=scope)
            response = Response(
                status_code=204,
                headers=cors_headers(self.allow_origins, headers.get("origin")),
            )
            await response(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


def cors_headers(
    allowed_origins: Sequence[str], origin: Optional[str] = None
) -> dict[str, str]:
    """CORS headers for a response to ``origin``.

    Returns no Allow-Origin header when the origin is not on the
    allow-list.
    """
    headers = {
        "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
        "Access-Control-Allow-Headers": ", ".join(ALLOWED_HEADERS),
    }
    if "*" in allowed_origins:
        headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return headers
