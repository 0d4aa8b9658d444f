from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging
import secrets
import string
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from coupondesk.core import metrics
from coupondesk.core.config import settings
from coupondesk.core.dates import as_utc, utcnow
from coupondesk.models.coupons import Coupon, CouponRedemption, CouponStatus
from coupondesk.schemas.coupons import CouponCreate, CouponUpdate
from coupondesk.services import pricing


logger = logging.getLogger(__name__)

REJECTION_MESSAGES: dict[str, str] = {
    "not_found": "Coupon not found",
    "inactive": "Coupon is not active",
    "not_started": "Coupon is not valid yet",
    "expired": "Coupon has expired",
    "usage_limit_reached": "Coupon usage limit reached",
    "per_user_limit_reached": "Coupon per-user limit reached",
    "min_order_not_met": "Order amount is below the coupon minimum",
}


class CouponError(RuntimeError):
    code = "coupon_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code:
            self.code = code


class CouponInputError(CouponError, ValueError):
    code = "invalid_input"


class CouponNotFoundError(CouponError):
    code = "not_found"


class CouponConflictError(CouponError):
    code = "coupon_exists"


class CouponRejectedError(CouponError):
    def __init__(self, reason: str) -> None:
        super().__init__(REJECTION_MESSAGES.get(reason, reason), code=reason)
        self.reason = reason


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _parse_order_amount(order_amount: Decimal | int | str) -> Decimal:
    try:
        amount = Decimal(str(order_amount))
    except (InvalidOperation, ValueError) as exc:
        raise CouponInputError("Order amount must be a number", code="invalid_order_amount") from exc
    if not amount.is_finite() or amount < 0:
        raise CouponInputError("Order amount must be a non-negative value", code="invalid_order_amount")
    try:
        amount = pricing.quantize_money(amount, rounding=settings.money_rounding)
    except InvalidOperation as exc:
        raise CouponInputError(f"Order amount must not exceed {pricing.MAX_MONEY}", code="invalid_order_amount") from exc
    if amount > pricing.MAX_MONEY:
        raise CouponInputError(f"Order amount must not exceed {pricing.MAX_MONEY}", code="invalid_order_amount")
    return amount


def generate_coupon_code(*, prefix: str = "", length: int = 10) -> str:
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(length))
    base = f"{prefix}-{suffix}".strip("-").upper()
    return base[: settings.code_max_length]


async def get_coupon_by_code(session: AsyncSession, *, code: str) -> Coupon | None:
    cleaned = normalize_code(code)
    if not cleaned:
        return None
    res = await session.execute(select(Coupon).where(Coupon.code == cleaned))
    return res.scalar_one_or_none()


async def _require_coupon(session: AsyncSession, *, code: str) -> Coupon:
    coupon = await get_coupon_by_code(session, code=code)
    if not coupon:
        raise CouponNotFoundError(REJECTION_MESSAGES["not_found"])
    return coupon


async def _count_user_redemptions(session: AsyncSession, *, coupon_id: UUID, user_id: str) -> int:
    return int(
        (
            await session.execute(
                select(func.count())
                .select_from(CouponRedemption)
                .where(CouponRedemption.coupon_id == coupon_id, CouponRedemption.user_id == user_id)
            )
        )
        .scalar_one()
    )


def _state_reasons(coupon: Coupon, at: datetime) -> list[str]:
    reasons: list[str] = []
    if coupon.status != CouponStatus.active:
        reasons.append("inactive")
    valid_from = as_utc(coupon.valid_from)
    valid_until = as_utc(coupon.valid_until)
    if valid_from and at < valid_from:
        reasons.append("not_started")
    if valid_until and at > valid_until:
        reasons.append("expired")
    if coupon.usage_limit is not None and int(coupon.used_count or 0) >= int(coupon.usage_limit):
        reasons.append("usage_limit_reached")
    return reasons


def coupon_status_label(coupon: Coupon, at: datetime | None = None) -> str:
    """Single word describing where a coupon is in its lifecycle."""
    reasons = _state_reasons(coupon, as_utc(at) or utcnow())
    if not reasons:
        return "active"
    return {
        "inactive": "inactive",
        "not_started": "upcoming",
        "expired": "expired",
        "usage_limit_reached": "exhausted",
    }[reasons[0]]


@dataclass(frozen=True)
class CouponValidation:
    code: str
    valid: bool
    order_amount: Decimal
    discount_amount: Decimal
    reasons: list[str] = field(default_factory=list)
    coupon: Coupon | None = None

    @property
    def reason(self) -> str | None:
        return self.reasons[0] if self.reasons else None


async def _evaluate_coupon(
    session: AsyncSession,
    *,
    code: str,
    user_id: str,
    order_amount: Decimal | int | str,
    at: datetime | None = None,
) -> CouponValidation:
    cleaned = normalize_code(code)
    if not cleaned:
        raise CouponInputError("Coupon code is required", code="invalid_code")
    amount = _parse_order_amount(order_amount)
    now = as_utc(at) or utcnow()

    coupon = await get_coupon_by_code(session, code=cleaned)
    if not coupon:
        return CouponValidation(code=cleaned, valid=False, order_amount=amount, discount_amount=pricing.ZERO, reasons=["not_found"])

    reasons = _state_reasons(coupon, now)

    if coupon.per_user_limit is not None and user_id:
        used_by_user = await _count_user_redemptions(session, coupon_id=coupon.id, user_id=user_id)
        if used_by_user >= int(coupon.per_user_limit):
            reasons.append("per_user_limit_reached")

    if coupon.minimum_order_amount is not None and amount < Decimal(coupon.minimum_order_amount):
        reasons.append("min_order_not_met")

    if reasons:
        return CouponValidation(
            code=cleaned,
            valid=False,
            order_amount=amount,
            discount_amount=pricing.ZERO,
            reasons=reasons,
            coupon=coupon,
        )

    breakdown = pricing.compute_discount(
        kind=coupon.discount_kind,
        value=Decimal(coupon.discount_value),
        order_amount=amount,
        maximum_discount_amount=coupon.maximum_discount_amount,
        rounding=settings.money_rounding,
    )
    return CouponValidation(
        code=cleaned,
        valid=True,
        order_amount=amount,
        discount_amount=breakdown.discount,
        coupon=coupon,
    )


async def validate_coupon(
    session: AsyncSession,
    *,
    code: str,
    user_id: str,
    order_amount: Decimal | int | str,
    at: datetime | None = None,
) -> CouponValidation:
    """Check a coupon against an order without redeeming it."""
    validation = await _evaluate_coupon(session, code=code, user_id=user_id, order_amount=order_amount, at=at)
    metrics.record_validation()
    return validation


async def _claim_usage(session: AsyncSession, *, coupon_id: UUID) -> bool:
    """Increment used_count only while the coupon is active and under its limit."""
    result = await session.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            Coupon.status == CouponStatus.active,
            or_(Coupon.usage_limit.is_(None), Coupon.used_count < Coupon.usage_limit),
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


@dataclass(frozen=True)
class CouponApplication:
    code: str
    discount_amount: Decimal
    order_total: Decimal
    used_count: int
    usage_limit: int | None
    redemption_id: UUID


def _reject(validation: CouponValidation, reason: str, *, user_id: str) -> CouponRejectedError:
    metrics.record_rejection(reason)
    logger.info("coupon_rejected", extra={"coupon_code": validation.code, "user_id": user_id, "reason": reason})
    return CouponRejectedError(reason)


async def apply_coupon(
    session: AsyncSession,
    *,
    code: str,
    user_id: str,
    order_amount: Decimal | int | str,
    at: datetime | None = None,
) -> CouponApplication:
    validation = await _evaluate_coupon(session, code=code, user_id=user_id, order_amount=order_amount, at=at)
    if not validation.valid or validation.coupon is None:
        raise _reject(validation, validation.reason or "not_found", user_id=user_id)

    coupon = validation.coupon
    if not await _claim_usage(session, coupon_id=coupon.id):
        await session.rollback()
        raise _reject(validation, "usage_limit_reached", user_id=user_id)

    redemption = CouponRedemption(
        coupon_id=coupon.id,
        user_id=user_id,
        order_amount=validation.order_amount,
        discount_amount=validation.discount_amount,
    )
    session.add(redemption)
    await session.commit()
    await session.refresh(coupon)

    metrics.record_application()
    logger.info(
        "coupon_applied",
        extra={
            "coupon_code": coupon.code,
            "user_id": user_id,
            "discount_amount": validation.discount_amount,
            "used_count": coupon.used_count,
        },
    )
    return CouponApplication(
        code=coupon.code,
        discount_amount=validation.discount_amount,
        order_total=validation.order_amount - validation.discount_amount,
        used_count=int(coupon.used_count),
        usage_limit=coupon.usage_limit,
        redemption_id=redemption.id,
    )


async def create_coupon(session: AsyncSession, payload: CouponCreate) -> Coupon:
    code = normalize_code(payload.code)
    if await get_coupon_by_code(session, code=code):
        raise CouponConflictError(f"Coupon code '{code}' already exists")

    coupon = Coupon(**payload.model_dump(exclude={"code"}), code=code, used_count=0)
    session.add(coupon)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise CouponConflictError(f"Coupon code '{code}' already exists") from exc
    await session.refresh(coupon)

    metrics.record_coupon_created()
    logger.info("coupon_created", extra={"coupon_code": code, "discount_kind": coupon.discount_kind.value})
    return coupon


async def update_coupon(session: AsyncSession, *, code: str, payload: CouponUpdate) -> Coupon:
    coupon = await _require_coupon(session, code=code)
    data = payload.model_dump(exclude_unset=True)

    valid_from = data.get("valid_from", coupon.valid_from)
    valid_until = data.get("valid_until", coupon.valid_until)
    if valid_from and valid_until and as_utc(valid_from) > as_utc(valid_until):
        raise CouponInputError("valid_from must not be after valid_until", code="invalid_window")
    if data.get("usage_limit") is not None and int(data["usage_limit"]) < int(coupon.used_count or 0):
        raise CouponInputError("Usage limit cannot be lower than the current usage", code="invalid_usage_limit")
    if "status" in data and data["status"] is None:
        data.pop("status")

    for key, value in data.items():
        setattr(coupon, key, value)
    session.add(coupon)
    await session.commit()
    await session.refresh(coupon)
    logger.info("coupon_updated", extra={"coupon_code": coupon.code, "fields": sorted(data)})
    return coupon


async def set_coupon_status(session: AsyncSession, *, code: str, status: CouponStatus) -> Coupon:
    return await update_coupon(session, code=code, payload=CouponUpdate(status=status))


async def list_coupons(session: AsyncSession, *, status: CouponStatus | None = None) -> list[Coupon]:
    query = select(Coupon).order_by(Coupon.created_at.desc(), Coupon.code)
    if status is not None:
        query = query.where(Coupon.status == status)
    return list((await session.execute(query)).scalars().all())


async def list_redemptions(session: AsyncSession, *, code: str) -> list[CouponRedemption]:
    coupon = await _require_coupon(session, code=code)
    result = await session.execute(
        select(CouponRedemption)
        .where(CouponRedemption.coupon_id == coupon.id)
        .order_by(CouponRedemption.redeemed_at.desc())
    )
    return list(result.scalars().all())
