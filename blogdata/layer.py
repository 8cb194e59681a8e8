"""
``BlogDataLayer``, the one object a host constructs at startup.

It owns the HTTP client, the transport selector (and so the session-wide
Direct/Proxy decision) and the rate limiters, and passes them to the
service functions.  Nothing here is module-global: two layers built with
different settings are fully independent.

Usage::

    async with BlogDataLayer() as data:
        tree = await data.load_comments()
        await data.submit_comment(CommentCreate(article_id="42", name="Ann", text="Hi"), tree)
"""
import logging
from typing import AsyncIterator, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from blogdata.config import Settings, settings as default_settings
from blogdata.database import engine as default_engine, init_state_db
from blogdata.rate_limiter import RateLimiterRegistry, now_ms
from blogdata.schemas import Article, ArticleUpdate, CascadeDeleteResult, Comment, CommentCreate, TransportMode
from blogdata.services import article_service, comment_service, profile_service
from blogdata.services.comment_service import CommentTree
from blogdata.transport import TransportSelector

logger = logging.getLogger(__name__)


class BlogDataLayer:
    def __init__(
        self,
        settings: Settings = default_settings,
        client: httpx.AsyncClient | None = None,
        proxy_client: httpx.AsyncClient | None = None,
        state_engine: AsyncEngine | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.settings = settings
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.REQUEST_TIMEOUT_S)
        self.selector = TransportSelector.from_settings(self.client, settings, proxy_client)

        self._state_engine = state_engine or default_engine
        session_factory = async_sessionmaker(self._state_engine, class_=AsyncSession, expire_on_commit=False)
        self.limiters = RateLimiterRegistry(
            settings.RATE_LIMITS, settings.DEFAULT_RATE_LIMIT, session_factory, clock
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> TransportMode:
        """Prepare local state and settle the transport mode for this session."""
        await init_state_db(self._state_engine)
        mode = await self.selector.determine_mode()
        logger.info("Data layer ready (%s)", mode.value)
        return mode

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "BlogDataLayer":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def load_comments(self) -> CommentTree:
        return await comment_service.load_comment_tree(
            self.selector, self.settings.COMMENTS_PATH, self.settings.MAX_NESTING_LEVEL
        )

    def watch_comments(self) -> AsyncIterator[CommentTree]:
        return comment_service.watch_comments(
            self.selector, self.settings.COMMENTS_PATH, self.settings.MAX_NESTING_LEVEL
        )

    async def submit_comment(self, data: CommentCreate, tree: CommentTree | None = None) -> Comment | None:
        return await comment_service.add_comment(
            self.selector, self.limiters.get("comment"), data, tree,
            self.settings.COMMENTS_PATH, self.settings.MAX_NESTING_LEVEL,
        )

    async def delete_comment(self, tree: CommentTree, comment_id: str) -> CascadeDeleteResult:
        return await comment_service.delete_comment(self.selector, tree, comment_id, self.settings.COMMENTS_PATH)

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    async def list_articles(self) -> list[Article]:
        return await article_service.list_articles(self.selector, self.settings.ARTICLES_PATH)

    async def get_article(self, article_id: str) -> Article | None:
        return await article_service.get_article(self.selector, article_id, self.settings.ARTICLES_PATH)

    async def publish_article(self, article: Article) -> Article:
        return await article_service.save_article(
            self.selector, article, self.limiters.get("articlePublish"), self.settings.ARTICLES_PATH
        )

    async def update_article(self, article_id: str, data: ArticleUpdate) -> Article | None:
        return await article_service.update_article(self.selector, article_id, data, self.settings.ARTICLES_PATH)

    async def delete_article(self, article_id: str) -> bool:
        return await article_service.delete_article(self.selector, article_id, self.settings.ARTICLES_PATH)

    def watch_articles(self) -> AsyncIterator[list[Article]]:
        return article_service.watch_articles(self.selector, self.settings.ARTICLES_PATH)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def get_avatar(self, uid: str) -> str | None:
        return await profile_service.get_avatar(self.selector, uid, self.settings.AVATARS_PATH)

    async def save_avatar(self, uid: str, image: str) -> None:
        await profile_service.save_avatar(
            self.selector, uid, image, self.limiters.get("upload"), self.settings.AVATARS_PATH
        )
