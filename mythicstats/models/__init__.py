"""
MythicStats models.

Pydantic models for upstream payloads and the outcome envelope, and the
SQLAlchemy ORM models.
"""

from mythicstats.models.db import (
    Base,
    CardDB,
    CardVariantDB,
    GameDB,
    InventoryItemDB,
    InventoryItemVariantDB,
    SetDB,
    TrackedGameDB,
    TrackedSetDB,
    UserDB,
)
from mythicstats.models.failure import (
    ApiResponse,
    FailureDetail,
    FailureKind,
    KnownError,
    OutcomeType,
    create_known_failure,
    create_success,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)
from mythicstats.models.upstream import (
    CardPayload,
    GamePayload,
    SetPayload,
    UsageReport,
    VariantPayload,
)

__all__ = [
    # Upstream payloads
    "CardPayload",
    "GamePayload",
    "SetPayload",
    "UsageReport",
    "VariantPayload",
    # ORM
    "Base",
    "CardDB",
    "CardVariantDB",
    "GameDB",
    "InventoryItemDB",
    "InventoryItemVariantDB",
    "SetDB",
    "TrackedGameDB",
    "TrackedSetDB",
    "UserDB",
    # Outcome envelope
    "ApiResponse",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "OutcomeType",
    "create_known_failure",
    "create_success",
    "create_unknown_failure",
    "finalize_response",
    "is_finalized",
]
