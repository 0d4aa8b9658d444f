from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coupondesk.db.session import get_session
from coupondesk.models.coupons import Coupon, CouponStatus
from coupondesk.schemas.coupons import (
    CouponApplicationRead,
    CouponCheckRequest,
    CouponCreate,
    CouponRead,
    CouponRedemptionRead,
    CouponUpdate,
    CouponValidationRead,
)
from coupondesk.services import coupons as coupons_service


router = APIRouter(prefix="/coupons", tags=["coupons"])


class CouponHTTPException(HTTPException):
    """HTTPException that keeps the machine-readable error code for the response body."""

    def __init__(self, status_code: int, detail: str, error_code: str) -> None:
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code


def _http_error(exc: coupons_service.CouponError) -> CouponHTTPException:
    if isinstance(exc, coupons_service.CouponInputError):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, coupons_service.CouponNotFoundError) or exc.code == "not_found":
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_409_CONFLICT
    return CouponHTTPException(status_code=status_code, detail=str(exc), error_code=exc.code)


def _to_read(coupon: Coupon) -> CouponRead:
    base = CouponRead.model_validate(coupon, from_attributes=True)
    return base.model_copy(update={"state": coupons_service.coupon_status_label(coupon)})


@router.post("", response_model=CouponRead, status_code=status.HTTP_201_CREATED)
async def create_coupon(payload: CouponCreate, session: AsyncSession = Depends(get_session)) -> CouponRead:
    try:
        coupon = await coupons_service.create_coupon(session, payload)
    except coupons_service.CouponError as exc:
        raise _http_error(exc) from exc
    return _to_read(coupon)


@router.get("", response_model=list[CouponRead])
async def list_coupons(
    session: AsyncSession = Depends(get_session),
    coupon_status: CouponStatus | None = Query(default=None, alias="status"),
) -> list[CouponRead]:
    coupons = await coupons_service.list_coupons(session, status=coupon_status)
    return [_to_read(c) for c in coupons]


@router.post("/validate", response_model=CouponValidationRead)
async def validate_coupon(payload: CouponCheckRequest, session: AsyncSession = Depends(get_session)) -> CouponValidationRead:
    try:
        result = await coupons_service.validate_coupon(
            session, code=payload.code, user_id=payload.user_id, order_amount=payload.order_amount
        )
    except coupons_service.CouponError as exc:
        raise _http_error(exc) from exc
    return CouponValidationRead(
        code=result.code,
        valid=result.valid,
        discount_amount=result.discount_amount,
        reason=result.reason,
        reasons=result.reasons,
    )


@router.post("/apply", response_model=CouponApplicationRead)
async def apply_coupon(payload: CouponCheckRequest, session: AsyncSession = Depends(get_session)) -> CouponApplicationRead:
    try:
        applied = await coupons_service.apply_coupon(
            session, code=payload.code, user_id=payload.user_id, order_amount=payload.order_amount
        )
    except coupons_service.CouponError as exc:
        raise _http_error(exc) from exc
    return CouponApplicationRead(
        code=applied.code,
        discount_amount=applied.discount_amount,
        order_total=applied.order_total,
        used_count=applied.used_count,
        usage_limit=applied.usage_limit,
        redemption_id=applied.redemption_id,
    )


@router.get("/{code}", response_model=CouponRead)
async def get_coupon(code: str, session: AsyncSession = Depends(get_session)) -> CouponRead:
    coupon = await coupons_service.get_coupon_by_code(session, code=code)
    if not coupon:
        raise CouponHTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found", error_code="not_found")
    return _to_read(coupon)


@router.patch("/{code}", response_model=CouponRead)
async def update_coupon(code: str, payload: CouponUpdate, session: AsyncSession = Depends(get_session)) -> CouponRead:
    try:
        coupon = await coupons_service.update_coupon(session, code=code, payload=payload)
    except coupons_service.CouponError as exc:
        raise _http_error(exc) from exc
    return _to_read(coupon)


@router.get("/{code}/redemptions", response_model=list[CouponRedemptionRead])
async def list_redemptions(code: str, session: AsyncSession = Depends(get_session)) -> list[CouponRedemptionRead]:
    try:
        rows = await coupons_service.list_redemptions(session, code=code)
    except coupons_service.CouponError as exc:
        raise _http_error(exc) from exc
    return [CouponRedemptionRead.model_validate(r, from_attributes=True) for r in rows]
