from mythicstats.api.health import router as health_router
from mythicstats.api.inventory import router as inventory_router
from mythicstats.api.quota import router as quota_router
from mythicstats.api.sets import router as sets_router
from mythicstats.api.tracking import router as tracking_router

__all__ = [
    "health_router",
    "inventory_router",
    "quota_router",
    "sets_router",
    "tracking_router",
]
