"""
Profile service: avatar data for the profile widget, stored at ``avatars/<uid>``.
"""
from blogdata.config import settings
from blogdata.rate_limiter import RateLimiter
from blogdata.transport import TransportSelector


async def get_avatar(selector: TransportSelector, uid: str, path: str | None = None) -> str | None:
    value = await selector.get(f"{(path or settings.AVATARS_PATH).rstrip('/')}/{uid}")
    return value if isinstance(value, str) else None


async def save_avatar(
    selector: TransportSelector,
    uid: str,
    image: str,
    limiter: RateLimiter | None = None,
    path: str | None = None,
) -> None:
    """Store *image* (a URL or data URI) as the avatar of *uid*; gated by the upload limiter when given."""
    if limiter is not None:
        await limiter.acquire()
    await selector.set(f"{(path or settings.AVATARS_PATH).rstrip('/')}/{uid}", image)
