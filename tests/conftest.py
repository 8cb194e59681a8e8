"""
Test infrastructure for the data layer and the relay.

Strategy
--------
- The backing store is replaced by ``FakeStore``, an in-memory FastAPI app
  reached through httpx's ``ASGITransport``; nothing leaves the process.
- The relay app is wired to the same fake store by overriding its
  ``get_upstream`` dependency, so proxy-mode tests exercise the real relay
  code end to end (selector -> relay -> store).
- Rate-limiter state lives in SQLite in-memory via aiosqlite.  StaticPool
  forces all sessions onto one connection, which is required because an
  in-memory database is connection-scoped.  Tables are created before and
  dropped after each test.
- The relay's Redis cache is disabled by setting ``cache._redis = None``;
  ``RelayCache`` already treats that as a no-op.
- Time is injected through ``FakeClock`` so sliding-window behaviour is
  deterministic.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from blogdata.cache import cache
from blogdata.config import Settings, settings
from blogdata.database import Base, init_state_db
from blogdata.dependencies import get_upstream
from blogdata.layer import BlogDataLayer
from blogdata.main import app as relay_app
from blogdata.rate_limiter import RateLimiterRegistry
from blogdata.transport.direct import DirectTransport
from blogdata.transport.probe import ConnectivityProbe
from blogdata.transport.proxy import ProxyTransport
from blogdata.transport.selector import TransportSelector
from tests.fake_store import FakeStore

STORE_URL = "http://store"
RELAY_URL = "http://relay"

# ---------------------------------------------------------------------------
# Local state engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

engine_test = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_state_db():
    """Create the state tables before each test, drop after to guarantee isolation."""
    await init_state_db(engine_test)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiters(clock: FakeClock) -> RateLimiterRegistry:
    return RateLimiterRegistry(session_factory=async_session_test, clock=clock)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest_asyncio.fixture
async def store_client(fake_store: FakeStore) -> AsyncClient:
    async with AsyncClient(transport=ASGITransport(app=fake_store.app), base_url=STORE_URL) as client:
        yield client


@pytest_asyncio.fixture
async def relay_client(store_client: AsyncClient, monkeypatch) -> AsyncClient:
    """
    httpx client for the relay app, whose upstream is the fake store.

    Redis is disabled so relay reads always reach the store.
    """
    cache._redis = None
    monkeypatch.setattr(settings, "STORE_URL", STORE_URL)
    relay_app.dependency_overrides[get_upstream] = lambda: store_client
    async with AsyncClient(transport=ASGITransport(app=relay_app), base_url=RELAY_URL) as client:
        yield client
    relay_app.dependency_overrides.clear()


def make_selector(
    store_client: AsyncClient,
    relay_client: AsyncClient,
    proxy_enabled: bool = True,
    proxy_forced: bool = False,
    probe_timeout_ms: int = 1000,
    poll_interval: float = 0.0,
) -> TransportSelector:
    return TransportSelector(
        DirectTransport(store_client, STORE_URL),
        ProxyTransport(relay_client, RELAY_URL, poll_interval=poll_interval),
        ConnectivityProbe(store_client, STORE_URL, probe_timeout_ms),
        proxy_enabled=proxy_enabled,
        proxy_forced=proxy_forced,
    )


@pytest_asyncio.fixture
async def direct_selector(store_client: AsyncClient, relay_client: AsyncClient) -> TransportSelector:
    selector = make_selector(store_client, relay_client, proxy_enabled=False)
    await selector.determine_mode()
    return selector


@pytest_asyncio.fixture
async def proxy_selector(store_client: AsyncClient, relay_client: AsyncClient) -> TransportSelector:
    selector = make_selector(store_client, relay_client, proxy_forced=True)
    await selector.determine_mode()
    return selector


@pytest.fixture
def selector(request) -> TransportSelector:
    """Resolve the selector fixture named by indirect parametrization."""
    return request.getfixturevalue(request.param)


@pytest.fixture
def layer_settings() -> Settings:
    return Settings(
        STORE_URL=STORE_URL,
        PROXY_URL=RELAY_URL,
        PROXY_ENABLED=False,
        POLL_INTERVAL_S=0.0,
    )


@pytest_asyncio.fixture
async def data_layer(
    layer_settings: Settings,
    store_client: AsyncClient,
    relay_client: AsyncClient,
    clock: FakeClock,
) -> BlogDataLayer:
    """A started ``BlogDataLayer`` in direct mode against the fake store."""
    layer = BlogDataLayer(
        settings=layer_settings,
        client=store_client,
        proxy_client=relay_client,
        state_engine=engine_test,
        clock=clock,
    )
    await layer.start()
    yield layer
    await layer.close()
