"""
Quota Ledger: per-user pricing API budget.

INVARIANTS:
- Remaining/used counters are written ONLY from upstream usage reports;
  nothing here increments or decrements them locally
- Checks fail closed: a missing counter counts as zero remaining
- The ledger never schedules retries itself; it only answers "may I call?"
  and "when does the budget come back?"
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from mythicstats.config import EXTRA_REQUESTS_THRESHOLD, NEAR_LIMIT_THRESHOLD, page_size_for_plan
from mythicstats.models.db import UserDB
from mythicstats.models.upstream import UsageReport
from mythicstats.services.staleness import utcnow

logger = logging.getLogger(__name__)


def next_reset_time(now: datetime) -> datetime:
    """
    Earlier of the next UTC midnight and the first of next month (UTC).

    This is when a caller blocked by the ledger should try again.
    """
    now = now.astimezone(UTC)
    daily_reset = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
    if now.month == 12:
        monthly_reset = datetime(now.year + 1, 1, 1, tzinfo=UTC)
    else:
        monthly_reset = datetime(now.year, now.month + 1, 1, tzinfo=UTC)
    return min(daily_reset, monthly_reset)


@dataclass(frozen=True)
class QuotaCheck:
    """Answer to "can the next N calls proceed?"."""

    allowed: bool
    reason: str | None = None


class QuotaWindow(BaseModel):
    limit: int | None
    used: int
    remaining: int
    percentage: float


class QuotaStatus(BaseModel):
    """Display snapshot of a user's ledger."""

    plan: str | None
    monthly: QuotaWindow
    daily: QuotaWindow
    requests_per_minute: int | None
    can_make_request: bool
    reset_time: datetime
    last_updated_at: datetime | None


def _percentage(used: int, limit: int | None) -> float:
    if not limit:
        return 0.0
    return used / limit * 100


class QuotaLedger:
    """
    Budget accounting for one user.

    Backed by the quota columns of the user row; every usage report is
    committed immediately so accounting survives a failed sync.
    """

    def __init__(
        self,
        session: AsyncSession,
        user: UserDB,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session = session
        self._user = user
        self._clock = clock

    @property
    def user_id(self) -> int:
        return self._user.id

    @property
    def plan(self) -> str | None:
        return self._user.api_plan

    @property
    def page_size(self) -> int:
        return page_size_for_plan(self._user.api_plan)

    @property
    def monthly_remaining(self) -> int:
        return self._user.api_requests_remaining or 0

    @property
    def daily_remaining(self) -> int:
        return self._user.api_daily_requests_remaining or 0

    def check_can_proceed(self, required_calls: int = 1) -> QuotaCheck:
        """
        Check whether `required_calls` more calls fit in the remaining budget.

        The reason names the limit (monthly or daily) that blocked the call.
        """
        if self.monthly_remaining < required_calls:
            return QuotaCheck(
                allowed=False,
                reason=(
                    f"Monthly limit exceeded. {self.monthly_remaining} remaining, "
                    f"need {required_calls}"
                ),
            )

        if self.daily_remaining < required_calls:
            return QuotaCheck(
                allowed=False,
                reason=(
                    f"Daily limit exceeded. {self.daily_remaining} remaining, "
                    f"need {required_calls}"
                ),
            )

        return QuotaCheck(allowed=True)

    def reset_time(self) -> datetime:
        return next_reset_time(self._clock())

    async def apply_usage_report(self, usage: UsageReport) -> None:
        """
        Overwrite the ledger with an authoritative usage report.

        Fields absent from the report keep their stored value.
        """
        user = self._user
        if usage.plan is not None:
            user.api_plan = usage.plan
        if usage.monthly_limit is not None:
            user.api_monthly_limit = usage.monthly_limit
        if usage.daily_limit is not None:
            user.api_daily_limit = usage.daily_limit
        if usage.requests_per_minute_limit is not None:
            user.api_rate_limit = usage.requests_per_minute_limit
        if usage.monthly_used is not None:
            user.api_requests_used = usage.monthly_used
        if usage.daily_used is not None:
            user.api_daily_requests_used = usage.daily_used
        if usage.monthly_remaining is not None:
            user.api_requests_remaining = usage.monthly_remaining
        if usage.daily_remaining is not None:
            user.api_daily_requests_remaining = usage.daily_remaining
        user.api_limit_info_updated_at = self._clock()

        await self._session.commit()

        if self.is_near_limit():
            logger.warning(
                "QUOTA_NEAR_LIMIT",
                extra={
                    "user_id": user.id,
                    "monthly_remaining": self.monthly_remaining,
                    "daily_remaining": self.daily_remaining,
                },
            )

    def is_near_limit(self) -> bool:
        return (
            self.monthly_remaining < NEAR_LIMIT_THRESHOLD
            or self.daily_remaining < NEAR_LIMIT_THRESHOLD
        )

    def has_extra_requests(self) -> bool:
        return self.monthly_remaining > EXTRA_REQUESTS_THRESHOLD

    def status(self) -> QuotaStatus:
        user = self._user
        monthly_used = user.api_requests_used or 0
        daily_used = user.api_daily_requests_used or 0
        return QuotaStatus(
            plan=user.api_plan,
            monthly=QuotaWindow(
                limit=user.api_monthly_limit,
                used=monthly_used,
                remaining=self.monthly_remaining,
                percentage=_percentage(monthly_used, user.api_monthly_limit),
            ),
            daily=QuotaWindow(
                limit=user.api_daily_limit,
                used=daily_used,
                remaining=self.daily_remaining,
                percentage=_percentage(daily_used, user.api_daily_limit),
            ),
            requests_per_minute=user.api_rate_limit,
            can_make_request=self.check_can_proceed().allowed,
            reset_time=self.reset_time(),
            last_updated_at=user.api_limit_info_updated_at,
        )
