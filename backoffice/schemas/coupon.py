from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clean_code(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().upper()
    if not cleaned:
        raise ValueError("Coupon code must not be blank")
    return cleaned


class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    description: str = ""
    discount_percentage: Decimal = Field(ge=0, le=100)
    min_order_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    max_discount_amount: Decimal | None = Field(default=None, ge=0)
    expiry_date: datetime
    usage_limit_per_user: int = Field(default=1, ge=1)
    total_usage_limit: int | None = Field(default=None, ge=1)
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return _clean_code(value) or ""


class CouponUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=40)
    description: str | None = None
    discount_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    min_order_amount: Decimal | None = Field(default=None, ge=0)
    max_discount_amount: Decimal | None = Field(default=None, ge=0)
    expiry_date: datetime | None = None
    usage_limit_per_user: int | None = Field(default=None, ge=1)
    total_usage_limit: int | None = Field(default=None, ge=1)
    is_active: bool | None = None

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str | None) -> str | None:
        return _clean_code(value)


class CouponRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    description: str
    discount_percentage: Decimal
    min_order_amount: Decimal
    max_discount_amount: Decimal | None = None
    expiry_date: datetime
    usage_limit_per_user: int
    total_usage_limit: int | None = None
    is_active: bool
    total_used_count: int
    created_at: datetime
    updated_at: datetime


class CouponValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    user_id: UUID
    order_amount: Decimal = Field(ge=0)


class CouponApplyRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    user_id: UUID
    order_amount: Decimal | None = Field(default=None, ge=0)


class CouponQuoteRead(BaseModel):
    code: str
    description: str
    percentage: Decimal
    discount_amount: Decimal
    original_amount: Decimal
    final_amount: Decimal


class CouponRedemptionRead(BaseModel):
    code: str
    usage_count: int
    remaining_uses: int
    total_used_count: int


class CouponUsageRecord(BaseModel):
    user_id: UUID
    name: str | None = None
    email: str | None = None
    usage_count: int
    last_used_at: datetime


class CouponStatsRead(BaseModel):
    coupon_id: UUID
    code: str
    total_used_count: int
    total_usage_limit: int | None = None
    usage_limit_per_user: int
    unique_users: int
    usage_records: list[CouponUsageRecord] = Field(default_factory=list)
