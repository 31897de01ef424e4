from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "MythicStats"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/mythicstats"

    justtcg_api_key: str = ""
    justtcg_base_url: str = "https://api.justtcg.com/v1"
    http_timeout_seconds: float = 30.0

    queue_name: str = "mythicstats-jobs"
    worker_poll_interval_seconds: float = 1.0


settings = Settings()


# =============================================================================
# UPSTREAM PLAN LIMITS
# =============================================================================

FREE_TIER_PLAN = "Free Tier"

# Records per page (or ids per batch request), fixed by the upstream plan
FREE_TIER_PAGE_SIZE = 20
PAID_TIER_PAGE_SIZE = 100

# Budget given to a freshly created user until the first usage report arrives
DEFAULT_MONTHLY_LIMIT = 1000
DEFAULT_DAILY_LIMIT = 100
DEFAULT_REQUESTS_PER_MINUTE = 10

# Warning thresholds for quota display
NEAR_LIMIT_THRESHOLD = 10
EXTRA_REQUESTS_THRESHOLD = 20


# =============================================================================
# RETRY POLICY
# =============================================================================

# Network failures only; rate-limit and API errors are never retried inline
MAX_NETWORK_ATTEMPTS = 3
INITIAL_BACKOFF_SECONDS = 1.0

# Queue-level redelivery for failed jobs
JOB_MAX_ATTEMPTS = 3
JOB_INITIAL_BACKOFF_SECONDS = 2.0


# =============================================================================
# STALENESS WINDOWS
# =============================================================================

DISCOVERY_INTERVAL = timedelta(days=7)
SET_SYNC_INTERVAL = timedelta(days=1)
PRICE_REFRESH_INTERVAL = timedelta(days=1)


# =============================================================================
# REPEAT SCHEDULES
# =============================================================================

DISCOVER_SETS_EVERY = timedelta(weeks=1)
SYNC_TRACKED_SETS_EVERY = timedelta(weeks=1)
UPDATE_INVENTORY_PRICES_EVERY = timedelta(hours=1)


def page_size_for_plan(plan: str | None) -> int:
    """Page (and batch) size the upstream plan allows."""
    return FREE_TIER_PAGE_SIZE if plan == FREE_TIER_PLAN else PAID_TIER_PAGE_SIZE
