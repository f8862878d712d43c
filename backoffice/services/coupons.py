from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import NoReturn
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core import metrics
from backoffice.core.config import settings
from backoffice.core.errors import StorageError
from backoffice.models.coupon import Coupon, CouponUsage
from backoffice.schemas.coupon import CouponCreate, CouponUpdate
from backoffice.services import coupon_usage
from backoffice.services import pricing

logger = logging.getLogger(__name__)

# Fields an admin may explicitly clear by sending null.
_NULLABLE_FIELDS = frozenset({"max_discount_amount", "total_usage_limit"})


class RejectionReason(str, enum.Enum):
    not_found = "not_found"
    inactive = "inactive"
    expired = "expired"
    below_minimum = "below_minimum"
    global_limit_reached = "global_limit_reached"
    per_user_limit_reached = "per_user_limit_reached"


@dataclass(frozen=True)
class CouponRejection:
    reason: RejectionReason
    message: str


@dataclass(frozen=True)
class CouponQuote:
    code: str
    description: str
    percentage: Decimal
    discount_amount: Decimal
    original_amount: Decimal
    final_amount: Decimal


@dataclass(frozen=True)
class RedemptionResult:
    code: str
    usage_count: int
    remaining_uses: int
    total_used_count: int


@dataclass(frozen=True)
class CouponUsageEntry:
    user_id: UUID
    name: str | None
    email: str | None
    usage_count: int
    last_used_at: datetime


@dataclass(frozen=True)
class CouponStats:
    coupon_id: UUID
    code: str
    total_used_count: int
    total_usage_limit: int | None
    usage_limit_per_user: int
    unique_users: int
    usage_records: list[CouponUsageEntry] = field(default_factory=list)


class DuplicateCodeError(Exception):
    def __init__(self, code: str) -> None:
        super().__init__(f"Coupon code already exists: {code}")
        self.code = code


class CouponLimitConflictError(Exception):
    """A lowered limit would fall below usage that has already happened."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


async def _storage_failure(session: AsyncSession, operation: str, exc: SQLAlchemyError) -> NoReturn:
    await session.rollback()
    metrics.record_storage_failure()
    logger.exception("coupon_storage_failure", extra={"operation": operation})
    raise StorageError(operation) from exc


# Registry


async def get_coupon(session: AsyncSession, coupon_id: UUID) -> Coupon | None:
    try:
        result = await session.execute(
            select(Coupon).where(Coupon.id == coupon_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_get", exc)


async def get_coupon_by_code(session: AsyncSession, *, code: str) -> Coupon | None:
    cleaned = normalize_code(code)
    if not cleaned:
        return None
    try:
        result = await session.execute(
            select(Coupon).where(Coupon.code == cleaned).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_get_by_code", exc)


async def list_coupons(session: AsyncSession) -> list[Coupon]:
    try:
        result = await session.execute(select(Coupon).order_by(Coupon.created_at.desc(), Coupon.code))
        return list(result.scalars().all())
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_list", exc)


async def _code_taken(session: AsyncSession, code: str, *, exclude_id: UUID | None = None) -> bool:
    stmt = select(func.count()).select_from(Coupon).where(Coupon.code == code)
    if exclude_id is not None:
        stmt = stmt.where(Coupon.id != exclude_id)
    try:
        return int((await session.execute(stmt)).scalar_one()) > 0
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_code_lookup", exc)


async def _integrity_failure(
    session: AsyncSession, *, code: str, coupon_id: UUID | None, operation: str, exc: IntegrityError
) -> NoReturn:
    await session.rollback()
    # The unique index is the authority when two admins race on a code.
    if await _code_taken(session, code, exclude_id=coupon_id):
        raise DuplicateCodeError(code) from exc
    await _storage_failure(session, operation, exc)


async def _commit_coupon(session: AsyncSession, coupon: Coupon, *, operation: str) -> Coupon:
    code = coupon.code
    coupon_id = coupon.id
    try:
        await session.commit()
        await session.refresh(coupon)
    except IntegrityError as exc:
        await _integrity_failure(session, code=code, coupon_id=coupon_id, operation=operation, exc=exc)
    except SQLAlchemyError as exc:
        await _storage_failure(session, operation, exc)
    return coupon


async def create_coupon(session: AsyncSession, payload: CouponCreate) -> Coupon:
    code = normalize_code(payload.code)
    if await _code_taken(session, code):
        raise DuplicateCodeError(code)

    coupon = Coupon(
        code=code,
        description=payload.description or "",
        discount_percentage=payload.discount_percentage,
        min_order_amount=payload.min_order_amount,
        max_discount_amount=payload.max_discount_amount,
        expiry_date=_as_utc(payload.expiry_date),
        usage_limit_per_user=payload.usage_limit_per_user,
        total_usage_limit=payload.total_usage_limit,
        is_active=payload.is_active,
        total_used_count=0,
    )
    session.add(coupon)
    coupon = await _commit_coupon(session, coupon, operation="coupon_create")
    logger.info("coupon_created", extra={"coupon_id": str(coupon.id), "coupon_code": coupon.code})
    return coupon


async def update_coupon(session: AsyncSession, coupon: Coupon, payload: CouponUpdate) -> Coupon:
    """Merge the fields present in ``payload`` into ``coupon``.

    The per-user limit is checked against the ledger only after the change
    has been flushed, so the coupon row is already write-locked and no
    redemption can slip in between the check and the commit.
    """
    data = payload.model_dump(exclude_unset=True)
    for key in [k for k, v in data.items() if v is None and k not in _NULLABLE_FIELDS]:
        data.pop(key)

    if "code" in data:
        data["code"] = normalize_code(data["code"])
        if data["code"] != coupon.code and await _code_taken(session, data["code"], exclude_id=coupon.id):
            raise DuplicateCodeError(data["code"])

    new_total_limit = data.get("total_usage_limit")
    if new_total_limit is not None and new_total_limit < coupon.total_used_count:
        raise CouponLimitConflictError(
            f"Total usage limit cannot be lower than the {coupon.total_used_count} redemption(s) already made"
        )

    if "expiry_date" in data:
        data["expiry_date"] = _as_utc(data["expiry_date"])

    coupon_id = coupon.id
    code = data.get("code", coupon.code)
    for key, value in data.items():
        setattr(coupon, key, value)
    session.add(coupon)

    new_user_limit = data.get("usage_limit_per_user")
    try:
        await session.flush()
        if new_user_limit is not None:
            highest = await coupon_usage.max_usage_count(session, coupon_id=coupon_id)
            if new_user_limit < highest:
                await session.rollback()
                await session.refresh(coupon)
                raise CouponLimitConflictError(
                    f"Per-user limit cannot be lower than the {highest} redemption(s) a user already made"
                )
    except IntegrityError as exc:
        await _integrity_failure(session, code=code, coupon_id=coupon_id, operation="coupon_update", exc=exc)
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_update", exc)

    coupon = await _commit_coupon(session, coupon, operation="coupon_update")
    logger.info(
        "coupon_updated",
        extra={"coupon_id": str(coupon.id), "coupon_code": coupon.code, "fields": sorted(data)},
    )
    return coupon


async def delete_coupon(session: AsyncSession, coupon: Coupon) -> None:
    coupon_id = coupon.id
    try:
        await session.execute(delete(CouponUsage).where(CouponUsage.coupon_id == coupon_id))
        await session.delete(coupon)
        await session.commit()
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_delete", exc)
    logger.info("coupon_deleted", extra={"coupon_id": str(coupon_id)})


async def get_coupon_stats(session: AsyncSession, coupon: Coupon) -> CouponStats:
    try:
        rows = await coupon_usage.list_usage_for_coupon(session, coupon_id=coupon.id)
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_stats", exc)
    records = [
        CouponUsageEntry(
            user_id=usage.user_id,
            name=getattr(user, "name", None),
            email=getattr(user, "email", None),
            usage_count=int(usage.usage_count),
            last_used_at=_as_utc(usage.last_used_at),
        )
        for usage, user in rows
    ]
    return CouponStats(
        coupon_id=coupon.id,
        code=coupon.code,
        total_used_count=int(coupon.total_used_count),
        total_usage_limit=coupon.total_usage_limit,
        usage_limit_per_user=int(coupon.usage_limit_per_user),
        unique_users=len(records),
        usage_records=records,
    )


# Validation and redemption


def _reject(reason: RejectionReason, message: str) -> CouponRejection:
    metrics.record_coupon_rejected(reason.value)
    logger.info("coupon_rejected", extra={"reason": reason.value})
    return CouponRejection(reason=reason, message=message)


def _not_found() -> CouponRejection:
    return _reject(RejectionReason.not_found, "Invalid coupon code")


def _state_rejection(coupon: Coupon, now: datetime) -> CouponRejection | None:
    if not coupon.is_active:
        return _reject(RejectionReason.inactive, "This coupon is no longer active")
    if now > _as_utc(coupon.expiry_date):
        return _reject(RejectionReason.expired, "This coupon has expired")
    return None


def _global_limit_rejection() -> CouponRejection:
    return _reject(RejectionReason.global_limit_reached, "This coupon has reached its usage limit")


def _per_user_rejection(usage_limit_per_user: int) -> CouponRejection:
    return _reject(
        RejectionReason.per_user_limit_reached,
        f"You have already used this coupon {usage_limit_per_user} time(s)",
    )


def _rejection_for(
    coupon: Coupon,
    *,
    usage: CouponUsage | None,
    order_amount: Decimal | None,
    now: datetime,
) -> CouponRejection | None:
    state = _state_rejection(coupon, now)
    if state is not None:
        return state
    if order_amount is not None and pricing.to_decimal(order_amount) < Decimal(coupon.min_order_amount):
        minimum = pricing.quantize_money(coupon.min_order_amount)
        return _reject(RejectionReason.below_minimum, f"Minimum order amount of {minimum} required")
    if coupon.total_usage_limit is not None and coupon.total_used_count >= coupon.total_usage_limit:
        return _global_limit_rejection()
    if usage is not None and usage.usage_count >= coupon.usage_limit_per_user:
        return _per_user_rejection(coupon.usage_limit_per_user)
    return None


async def quote_coupon(
    session: AsyncSession,
    *,
    code: str,
    user_id: UUID,
    order_amount: Decimal,
    now: datetime | None = None,
) -> CouponQuote | CouponRejection:
    """Price ``order_amount`` with the coupon without recording anything."""
    at = _as_utc(now) if now is not None else _now()
    try:
        coupon = await get_coupon_by_code(session, code=code)
        if coupon is None:
            return _not_found()
        usage = await coupon_usage.get_usage(session, user_id=user_id, coupon_id=coupon.id)
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_quote", exc)

    rejection = _rejection_for(coupon, usage=usage, order_amount=order_amount, now=at)
    if rejection is not None:
        return rejection

    rounding = settings.money_rounding
    original = pricing.quantize_money(order_amount, rounding=rounding)
    discount = pricing.compute_discount(
        coupon.discount_percentage,
        order_amount,
        coupon.max_discount_amount,
        rounding=rounding,
    )
    metrics.record_coupon_quoted()
    return CouponQuote(
        code=coupon.code,
        description=coupon.description,
        percentage=Decimal(coupon.discount_percentage),
        discount_amount=discount,
        original_amount=original,
        final_amount=pricing.final_amount(order_amount, discount, rounding=rounding),
    )


async def apply_coupon(
    session: AsyncSession,
    *,
    code: str,
    user_id: UUID,
    order_amount: Decimal | None = None,
    now: datetime | None = None,
) -> RedemptionResult | CouponRejection:
    """Commit one redemption of the coupon for ``user_id``.

    The quote checks run again here for well-worded early rejections. The
    coupon counter moves first: its conditional UPDATE locks the coupon row
    and returns the per-user limit in force, which then bounds the ledger
    upsert. A redemption racing another one, or an admin edit, either fits
    within every limit or commits nothing.
    """
    at = _as_utc(now) if now is not None else _now()
    try:
        coupon = await get_coupon_by_code(session, code=code)
        if coupon is None:
            return _not_found()
        usage = await coupon_usage.get_usage(session, user_id=user_id, coupon_id=coupon.id)
        rejection = _rejection_for(coupon, usage=usage, order_amount=order_amount, now=at)
        if rejection is not None:
            return rejection

        coupon_id = coupon.id
        coupon_code = coupon.code

        counters = await coupon_usage.increment_total_used(session, coupon_id=coupon_id, now=at)
        if counters is None:
            current = await get_coupon(session, coupon_id)
            rejection = _not_found() if current is None else _state_rejection(current, at)
            if rejection is None:
                rejection = _global_limit_rejection()
            await session.rollback()
            return rejection
        total_used, per_user_limit = counters

        usage_count = await coupon_usage.record_redemption(
            session,
            user_id=user_id,
            coupon_id=coupon_id,
            usage_limit_per_user=per_user_limit,
            now=at,
        )
        if usage_count is None:
            rejection = _per_user_rejection(per_user_limit)
            await session.rollback()
            return rejection

        await session.commit()
    except SQLAlchemyError as exc:
        await _storage_failure(session, "coupon_apply", exc)

    metrics.record_coupon_redeemed()
    logger.info(
        "coupon_redeemed",
        extra={
            "coupon_code": coupon_code,
            "user_id": str(user_id),
            "usage_count": usage_count,
            "total_used_count": total_used,
        },
    )
    return RedemptionResult(
        code=coupon_code,
        usage_count=usage_count,
        remaining_uses=max(0, per_user_limit - usage_count),
        total_used_count=total_used,
    )
