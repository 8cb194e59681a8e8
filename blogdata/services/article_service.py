"""
Article service: CRUD for articles stored under ``articles/<id>``.

Articles are addressed by their own id (not a push key), so creation and
full edits are a single ``set``.  Reads return validated ``Article``
models; entries that fail validation are logged and skipped rather than
breaking the whole listing.
"""
import logging
from typing import Any, AsyncIterator

from pydantic import ValidationError

from blogdata.config import settings
from blogdata.rate_limiter import RateLimiter
from blogdata.schemas import Article, ArticleUpdate
from blogdata.transport import TransportSelector

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _article_path(article_id: str, path: str | None = None) -> str:
    return f"{(path or settings.ARTICLES_PATH).rstrip('/')}/{article_id}"


def parse_articles(snapshot: Any) -> list[Article]:
    """Convert an ``articles`` snapshot (map or array) into a list of models."""
    if not snapshot:
        return []
    values = snapshot.values() if isinstance(snapshot, dict) else snapshot
    articles: list[Article] = []
    for value in values:
        if not isinstance(value, dict):
            continue
        try:
            articles.append(Article.model_validate(value))
        except ValidationError as exc:
            logger.warning("Skipping malformed article %r: %s", value.get("id"), exc.error_count())
    return articles


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_articles(selector: TransportSelector, path: str | None = None) -> list[Article]:
    return parse_articles(await selector.get(path or settings.ARTICLES_PATH))


async def get_article(selector: TransportSelector, article_id: str, path: str | None = None) -> Article | None:
    """Return the article identified by *article_id*, or None when it does not exist."""
    data = await selector.get(_article_path(article_id, path))
    if not isinstance(data, dict):
        return None
    return Article.model_validate(data)


async def save_article(
    selector: TransportSelector,
    article: Article,
    limiter: RateLimiter | None = None,
    path: str | None = None,
) -> Article:
    """
    Create or overwrite *article*.

    When *limiter* is given the write is gated by it first and a blocked
    action raises ``RateLimitError`` without touching the store.
    """
    if limiter is not None:
        await limiter.acquire()
    await selector.set(_article_path(article.id, path), article.model_dump())
    return article


async def update_article(
    selector: TransportSelector,
    article_id: str,
    data: ArticleUpdate,
    path: str | None = None,
) -> Article | None:
    """
    Partially update an existing article and return the merged result.

    Returns None when the article does not exist.  Only fields explicitly
    set on *data* are sent (``model_dump(exclude_unset=True)``).
    """
    existing = await get_article(selector, article_id, path)
    if existing is None:
        return None

    partial = data.model_dump(exclude_unset=True)
    if not partial:
        return existing
    await selector.update(_article_path(article_id, path), partial)
    return Article.model_validate({**existing.model_dump(), **partial})


async def delete_article(selector: TransportSelector, article_id: str, path: str | None = None) -> bool:
    """
    Delete the article identified by *article_id*.

    Returns True on success, False when the article does not exist.
    """
    if await get_article(selector, article_id, path) is None:
        return False
    await selector.delete(_article_path(article_id, path))
    return True


async def watch_articles(selector: TransportSelector, path: str | None = None) -> AsyncIterator[list[Article]]:
    """Yield the full article list on every change."""
    subscription = await selector.subscribe(path or settings.ARTICLES_PATH)
    try:
        async for snapshot in subscription:
            yield parse_articles(snapshot)
    finally:
        await subscription.cancel()
