from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from coupondesk.core.dates import as_utc
from coupondesk.models.coupons import CouponStatus, DiscountKind


def _clean_code(value: str) -> str:
    cleaned = str(value or "").strip().upper()
    if not cleaned:
        raise ValueError("Code is required")
    return cleaned


class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    description: str | None = None
    discount_kind: DiscountKind = DiscountKind.percentage
    discount_value: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    minimum_order_amount: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    maximum_discount_amount: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    usage_limit: int | None = Field(default=None, ge=1)
    per_user_limit: int | None = Field(default=None, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    status: CouponStatus = CouponStatus.active

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return _clean_code(v)

    @field_validator("valid_from", "valid_until")
    @classmethod
    def window_in_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)

    @model_validator(mode="after")
    def check_rules(self) -> "CouponCreate":
        if self.discount_kind == DiscountKind.percentage and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.valid_from and self.valid_until and self.valid_from > self.valid_until:
            raise ValueError("valid_from must not be after valid_until")
        return self


class CouponUpdate(BaseModel):
    description: str | None = None
    minimum_order_amount: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    maximum_discount_amount: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    usage_limit: int | None = Field(default=None, ge=1)
    per_user_limit: int | None = Field(default=None, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    status: CouponStatus | None = None

    @field_validator("valid_from", "valid_until")
    @classmethod
    def window_in_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)


class CouponRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    description: str | None = None
    discount_kind: DiscountKind
    discount_value: Decimal
    minimum_order_amount: Decimal | None = None
    maximum_discount_amount: Decimal | None = None
    usage_limit: int | None = None
    used_count: int
    per_user_limit: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    status: CouponStatus
    state: str | None = None
    created_at: datetime
    updated_at: datetime


class CouponRedemptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_id: UUID
    user_id: str
    order_amount: Decimal
    discount_amount: Decimal
    redeemed_at: datetime


class CouponCheckRequest(BaseModel):
    code: str = Field(min_length=1, max_length=40)
    user_id: str = Field(min_length=1, max_length=120)
    order_amount: Decimal = Field(ge=0, max_digits=10, decimal_places=2)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return _clean_code(v)


class CouponValidationRead(BaseModel):
    code: str
    valid: bool
    discount_amount: Decimal = Decimal("0.00")
    reason: str | None = None
    reasons: list[str] = Field(default_factory=list)


class CouponApplicationRead(BaseModel):
    code: str
    discount_amount: Decimal
    order_total: Decimal
    used_count: int
    usage_limit: int | None = None
    redemption_id: UUID
