"""
MythicStats services.

Quota accounting, the pricing API client, catalog synchronization, and the
tracking, inventory and price refresh flows built on them.
"""

from mythicstats.services.catalog_sync import CatalogSynchronizer, SyncResult
from mythicstats.services.errors import (
    CatalogNotFoundError,
    RateLimitExceededError,
    ResponseValidationError,
    UpstreamApiError,
    UpstreamNetworkError,
)
from mythicstats.services.inventory import InventoryService
from mythicstats.services.price_update import PriceUpdateService
from mythicstats.services.quota_ledger import QuotaCheck, QuotaLedger, QuotaStatus, next_reset_time
from mythicstats.services.staleness import needs_discovery, needs_price_update, needs_sync
from mythicstats.services.sync_client import SyncClient, create_http_client
from mythicstats.services.tracking import TrackingService

__all__ = [
    # Quota
    "QuotaCheck",
    "QuotaLedger",
    "QuotaStatus",
    "next_reset_time",
    # Pricing API
    "SyncClient",
    "create_http_client",
    # Errors
    "CatalogNotFoundError",
    "RateLimitExceededError",
    "ResponseValidationError",
    "UpstreamApiError",
    "UpstreamNetworkError",
    # Sync flows
    "CatalogSynchronizer",
    "InventoryService",
    "PriceUpdateService",
    "SyncResult",
    "TrackingService",
    # Staleness gates
    "needs_discovery",
    "needs_price_update",
    "needs_sync",
]
