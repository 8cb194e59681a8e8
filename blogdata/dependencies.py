import httpx
from fastapi import Request


def get_upstream(request: Request) -> httpx.AsyncClient:
    """
    FastAPI dependency returning the relay's shared client for the store.

    The client is created in the app lifespan and stored on ``app.state``;
    tests override this dependency to point the relay at a fake store.
    """
    return request.app.state.upstream
