from pydantic_settings import BaseSettings

from blogdata.schemas import RateLimitRule


class Settings(BaseSettings):
    # Backing store
    STORE_URL: str = "http://localhost:9000"
    STORE_AUTH: str = ""

    # Transport selection
    PROXY_ENABLED: bool = True
    PROXY_FORCED: bool = False
    PROXY_URL: str = "http://localhost:8787"
    PROBE_TIMEOUT_MS: int = 3000
    REQUEST_TIMEOUT_S: float = 10.0
    POLL_INTERVAL_S: float = 30.0

    # Durable local state (rate limiter)
    STATE_DATABASE_URL: str = "sqlite+aiosqlite:///./blogdata_state.db"
    DEBUG: bool = False

    # Rate limits, keyed by action name
    RATE_LIMITS: dict[str, RateLimitRule] = {
        "comment": RateLimitRule(max_requests=3, window_ms=60_000, block_duration=300_000),
        "login": RateLimitRule(max_requests=5, window_ms=60_000, block_duration=600_000),
        "articlePublish": RateLimitRule(max_requests=10, window_ms=3_600_000, block_duration=1_800_000),
        "upload": RateLimitRule(max_requests=20, window_ms=60_000, block_duration=300_000),
    }
    DEFAULT_RATE_LIMIT: RateLimitRule = RateLimitRule(
        max_requests=5, window_ms=60_000, block_duration=300_000
    )

    # Comments
    MAX_NESTING_LEVEL: int = 3

    # Store paths
    ARTICLES_PATH: str = "articles"
    COMMENTS_PATH: str = "comments"
    AVATARS_PATH: str = "avatars"

    # Relay
    ALLOWED_ORIGINS: list[str] = [
        "https://blog.example.com",
        "http://localhost:5500",
        "http://127.0.0.1:5500",
        "http://localhost:3000",
    ]
    REDIS_URL: str = "redis://localhost:6379/0"
    RELAY_CACHE_TTL: int = 5

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
