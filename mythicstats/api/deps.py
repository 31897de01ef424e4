"""
Shared request dependencies.

The pricing API client is created by the app lifespan and lives on
`app.state.http`; routes never build their own.
"""

from typing import Annotated

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.db.database import get_session
from mythicstats.db.operations import get_user
from mythicstats.models.db import UserDB
from mythicstats.models.failure import FailureKind, KnownError
from mythicstats.services.catalog_sync import CatalogSynchronizer
from mythicstats.services.quota_ledger import QuotaLedger
from mythicstats.services.sync_client import SyncClient

SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http


HttpDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]


async def require_user(session: AsyncSession, user_id: int) -> UserDB:
    user = await get_user(session, user_id)
    if user is None:
        raise KnownError(
            kind=FailureKind.NOT_FOUND,
            message=f"User '{user_id}' was not found.",
            status_code=404,
        )
    return user


async def build_synchronizer(
    session: AsyncSession, http: httpx.AsyncClient, user_id: int
) -> CatalogSynchronizer:
    """Synchronizer bound to the user's quota ledger."""
    user = await require_user(session, user_id)
    client = SyncClient(http, QuotaLedger(session, user))
    return CatalogSynchronizer(session, client)
