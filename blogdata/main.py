import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from blogdata.cache import cache
from blogdata.config import settings
from blogdata.middleware import AllowListCORSMiddleware, TimingMiddleware
from blogdata.routers import health, relay

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    app.state.upstream = httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_S)
    try:
        await cache.connect()
    except Exception as exc:
        logger.warning("Relay cache unavailable, forwarding uncached: %s", exc)
    yield
    # Shutdown
    await cache.disconnect()
    await app.state.upstream.aclose()


app = FastAPI(
    title="Blog Store Relay",
    description="Stateless HTTP relay in front of the blog's realtime store",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(AllowListCORSMiddleware, allowed_origins=settings.ALLOWED_ORIGINS)

# Routers (health first: the relay route matches every path)
app.include_router(health.router)
app.include_router(relay.router)
