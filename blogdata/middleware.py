import time

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

ALLOW_METHODS = "GET, POST, PUT, DELETE, PATCH, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"
PREFLIGHT_MAX_AGE = "86400"


# ---------------------------------------------------------------------------
# Middleware (pure ASGI, no BaseHTTPMiddleware child task)
# ---------------------------------------------------------------------------

class AllowListCORSMiddleware:
    """
    CORS for the relay with a fixed origin allow-list.

    ``Access-Control-Allow-Origin`` echoes the request's ``Origin`` when it
    is on the list and falls back to the first entry otherwise.  Every
    ``OPTIONS`` request is answered here as a preflight (204, cached for a
    day) and never reaches the routes.
    """

    def __init__(self, app: ASGIApp, allowed_origins: list[str]) -> None:
        if not allowed_origins:
            raise ValueError("allowed_origins must contain at least one origin")
        self.app = app
        self.allowed_origins = list(allowed_origins)

    def allowed_origin(self, origin: str | None) -> str:
        return origin if origin in self.allowed_origins else self.allowed_origins[0]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        origin = self.allowed_origin(Headers(scope=scope).get("origin"))

        if scope["method"] == "OPTIONS":
            response = Response(
                status_code=204,
                headers={
                    "Access-Control-Allow-Origin": origin,
                    "Access-Control-Allow-Methods": ALLOW_METHODS,
                    "Access-Control-Allow-Headers": ALLOW_HEADERS,
                    "Access-Control-Max-Age": PREFLIGHT_MAX_AGE,
                },
            )
            await response(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers["Access-Control-Allow-Origin"] = origin
                headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
                headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
                headers.add_vary_header("Origin")
            await send(message)

        await self.app(scope, receive, send_wrapper)


class TimingMiddleware:
    """Adds ``X-Response-Time-Ms``: wall-clock time for the entire request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)
