"""
Verb-mapped forwarding to the backing store.

``/<path>`` is sent to ``<STORE_URL>/<path>.json`` (the suffix is added
only when missing) with the query string and body passed through.  The
store's status and body are returned unchanged; only a failure to reach
the store at all becomes a 500 from the relay itself.
"""
import logging

import httpx
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from blogdata.cache import cache
from blogdata.config import settings
from blogdata.dependencies import get_upstream

logger = logging.getLogger(__name__)

router = APIRouter(tags=["relay"])

RELAY_METHODS = ["GET", "PUT", "POST", "PATCH", "DELETE"]
STORE_SUFFIX = ".json"


def store_url(path: str, query: str = "") -> str:
    path = path.strip("/")
    if not path.endswith(STORE_SUFFIX):
        path += STORE_SUFFIX
    url = f"{settings.STORE_URL.rstrip('/')}/{path}"
    return f"{url}?{query}" if query else url


@router.api_route("/{path:path}", methods=RELAY_METHODS)
async def relay(path: str, request: Request, upstream: httpx.AsyncClient = Depends(get_upstream)):
    method = request.method
    query = request.url.query
    cache_key = cache.key_for(path, query)

    if method == "GET":
        cached = await cache.get(cache_key)
        if cached is not None:
            return Response(
                content=cached["body"],
                status_code=cached["status"],
                media_type="application/json",
                headers={"X-Relay-Cache": "hit"},
            )

    body = await request.body()
    try:
        upstream_response = await upstream.request(
            method,
            store_url(path, query),
            content=body or None,
            headers={"Content-Type": "application/json"},
        )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.error("Relay %s /%s failed: %s", method, path, exc)
        return JSONResponse(status_code=500, content={"error": "Proxy error", "message": str(exc)})

    if upstream_response.is_success:
        if method == "GET":
            await cache.set(
                cache_key,
                {"status": upstream_response.status_code, "body": upstream_response.text},
                ttl=settings.RELAY_CACHE_TTL,
            )
        else:
            await cache.invalidate_all()

    return Response(
        content=upstream_response.content,
        status_code=upstream_response.status_code,
        media_type=upstream_response.headers.get("content-type", "application/json"),
    )
