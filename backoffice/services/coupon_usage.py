"""Per-user redemption ledger and the coupon-wide usage counter.

Both counters only move through single conditional statements so concurrent
redemptions cannot lose updates or overshoot their limits. None of these
helpers commit; the redemption flow owns the transaction.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.models.coupon import Coupon, CouponUsage
from backoffice.models.user import User


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _insert_for(session: AsyncSession):
    dialect = getattr(getattr(session.bind, "dialect", None), "name", "")
    if dialect == "sqlite":
        return sqlite_insert
    if dialect == "postgresql":
        return pg_insert
    raise RuntimeError(f"Unsupported database dialect for coupon ledger: {dialect}")


async def get_usage(session: AsyncSession, *, user_id: UUID, coupon_id: UUID) -> CouponUsage | None:
    result = await session.execute(
        select(CouponUsage)
        .where(CouponUsage.user_id == user_id, CouponUsage.coupon_id == coupon_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def record_redemption(
    session: AsyncSession,
    *,
    user_id: UUID,
    coupon_id: UUID,
    usage_limit_per_user: int,
    now: datetime | None = None,
) -> int | None:
    """Create the usage row with a count of 1 or bump the existing one.

    The increment only happens while ``usage_count < usage_limit_per_user``;
    returns the new count, or ``None`` when the user is already at the limit.
    """
    if usage_limit_per_user < 1:
        return None
    used_at = now or _now()
    insert_fn = _insert_for(session)
    stmt = insert_fn(CouponUsage).values(
        id=uuid.uuid4(),
        user_id=user_id,
        coupon_id=coupon_id,
        usage_count=1,
        last_used_at=used_at,
        created_at=used_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[CouponUsage.user_id, CouponUsage.coupon_id],
        set_={
            "usage_count": CouponUsage.usage_count + 1,
            "last_used_at": used_at,
        },
        where=CouponUsage.usage_count < usage_limit_per_user,
    ).returning(CouponUsage.usage_count)
    result = await session.execute(stmt)
    count = result.scalar_one_or_none()
    return int(count) if count is not None else None


async def increment_total_used(
    session: AsyncSession, *, coupon_id: UUID, now: datetime | None = None
) -> tuple[int, int] | None:
    """Bump ``total_used_count`` if the coupon is still redeemable right now.

    The activity, expiry and global-cap predicates are part of the UPDATE
    itself, which also locks the coupon row until the transaction ends.
    Returns ``(total_used_count, usage_limit_per_user)`` as written, or
    ``None`` when no row qualified.
    """
    at = now or _now()
    stmt = (
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            Coupon.is_active.is_(True),
            Coupon.expiry_date >= at,
            or_(Coupon.total_usage_limit.is_(None), Coupon.total_used_count < Coupon.total_usage_limit),
        )
        .values(total_used_count=Coupon.total_used_count + 1)
        .returning(Coupon.total_used_count, Coupon.usage_limit_per_user)
        .execution_options(synchronize_session="fetch")
    )
    result = await session.execute(stmt)
    row = result.one_or_none()
    if row is None:
        return None
    return int(row[0]), int(row[1])


async def max_usage_count(session: AsyncSession, *, coupon_id: UUID) -> int:
    result = await session.execute(
        select(func.coalesce(func.max(CouponUsage.usage_count), 0)).where(CouponUsage.coupon_id == coupon_id)
    )
    return int(result.scalar_one())


async def list_usage_for_coupon(
    session: AsyncSession, *, coupon_id: UUID
) -> list[tuple[CouponUsage, User | None]]:
    result = await session.execute(
        select(CouponUsage, User)
        .outerjoin(User, User.id == CouponUsage.user_id)
        .where(CouponUsage.coupon_id == coupon_id)
        .order_by(CouponUsage.last_used_at.desc())
        .execution_options(populate_existing=True)
    )
    return [(usage, user) for usage, user in result.all()]
