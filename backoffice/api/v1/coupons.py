from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.dependencies import get_current_admin
from backoffice.core.errors import ApiError
from backoffice.db.session import get_session
from backoffice.models.coupon import Coupon
from backoffice.models.user import Admin
from backoffice.schemas.coupon import (
    CouponApplyRequest,
    CouponCreate,
    CouponQuoteRead,
    CouponRead,
    CouponRedemptionRead,
    CouponStatsRead,
    CouponUpdate,
    CouponUsageRecord,
    CouponValidateRequest,
)
from backoffice.services import coupons as coupons_service

router = APIRouter(prefix="/coupons", tags=["coupons"])

_DETAIL_COUPON_NOT_FOUND = "Coupon not found"
_DETAIL_DUPLICATE_CODE = "Coupon code already exists"


def _rejection_error(rejection: coupons_service.CouponRejection) -> ApiError:
    status_code = (
        status.HTTP_404_NOT_FOUND
        if rejection.reason == coupons_service.RejectionReason.not_found
        else status.HTTP_400_BAD_REQUEST
    )
    return ApiError(status_code, rejection.message, code=rejection.reason.value)


async def _get_coupon_or_404(session: AsyncSession, coupon_id: UUID) -> Coupon:
    coupon = await coupons_service.get_coupon(session, coupon_id)
    if coupon is None:
        raise ApiError(status.HTTP_404_NOT_FOUND, _DETAIL_COUPON_NOT_FOUND, code="coupon_not_found")
    return coupon


# Public checkout endpoints; declared before /{coupon_id} so the literal paths win.


@router.post("/validate", response_model=CouponQuoteRead)
async def validate_coupon(
    payload: CouponValidateRequest,
    session: AsyncSession = Depends(get_session),
) -> CouponQuoteRead:
    result = await coupons_service.quote_coupon(
        session,
        code=payload.code,
        user_id=payload.user_id,
        order_amount=payload.order_amount,
    )
    if isinstance(result, coupons_service.CouponRejection):
        raise _rejection_error(result)
    return CouponQuoteRead(
        code=result.code,
        description=result.description,
        percentage=result.percentage,
        discount_amount=result.discount_amount,
        original_amount=result.original_amount,
        final_amount=result.final_amount,
    )


@router.post("/apply", response_model=CouponRedemptionRead)
async def apply_coupon(
    payload: CouponApplyRequest,
    session: AsyncSession = Depends(get_session),
) -> CouponRedemptionRead:
    result = await coupons_service.apply_coupon(
        session,
        code=payload.code,
        user_id=payload.user_id,
        order_amount=payload.order_amount,
    )
    if isinstance(result, coupons_service.CouponRejection):
        raise _rejection_error(result)
    return CouponRedemptionRead(
        code=result.code,
        usage_count=result.usage_count,
        remaining_uses=result.remaining_uses,
        total_used_count=result.total_used_count,
    )


# Admin registry endpoints.


@router.get("", response_model=list[CouponRead])
async def list_coupons(
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(get_current_admin),
) -> list[CouponRead]:
    coupons = await coupons_service.list_coupons(session)
    return [CouponRead.model_validate(coupon) for coupon in coupons]


@router.post("", response_model=CouponRead, status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponCreate,
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(get_current_admin),
) -> CouponRead:
    try:
        coupon = await coupons_service.create_coupon(session, payload)
    except coupons_service.DuplicateCodeError:
        raise ApiError(status.HTTP_400_BAD_REQUEST, _DETAIL_DUPLICATE_CODE, code="duplicate_code")
    return CouponRead.model_validate(coupon)


@router.get("/{coupon_id}", response_model=CouponRead)
async def get_coupon(
    coupon_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(get_current_admin),
) -> CouponRead:
    coupon = await _get_coupon_or_404(session, coupon_id)
    return CouponRead.model_validate(coupon)


@router.put("/{coupon_id}", response_model=CouponRead)
async def update_coupon(
    coupon_id: UUID,
    payload: CouponUpdate,
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(get_current_admin),
) -> CouponRead:
    coupon = await _get_coupon_or_404(session, coupon_id)
    try:
        coupon = await coupons_service.update_coupon(session, coupon, payload)
    except coupons_service.DuplicateCodeError:
        raise ApiError(status.HTTP_400_BAD_REQUEST, _DETAIL_DUPLICATE_CODE, code="duplicate_code")
    except coupons_service.CouponLimitConflictError as exc:
        raise ApiError(status.HTTP_400_BAD_REQUEST, str(exc), code="limit_below_usage")
    return CouponRead.model_validate(coupon)


@router.delete("/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_coupon(
    coupon_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(get_current_admin),
) -> Response:
    coupon = await _get_coupon_or_404(session, coupon_id)
    await coupons_service.delete_coupon(session, coupon)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{coupon_id}/stats", response_model=CouponStatsRead)
async def coupon_stats(
    coupon_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(get_current_admin),
) -> CouponStatsRead:
    coupon = await _get_coupon_or_404(session, coupon_id)
    stats = await coupons_service.get_coupon_stats(session, coupon)
    return CouponStatsRead(
        coupon_id=stats.coupon_id,
        code=stats.code,
        total_used_count=stats.total_used_count,
        total_usage_limit=stats.total_usage_limit,
        usage_limit_per_user=stats.usage_limit_per_user,
        unique_users=stats.unique_users,
        usage_records=[
            CouponUsageRecord(
                user_id=entry.user_id,
                name=entry.name,
                email=entry.email,
                usage_count=entry.usage_count,
                last_used_at=entry.last_used_at,
            )
            for entry in stats.usage_records
        ],
    )
