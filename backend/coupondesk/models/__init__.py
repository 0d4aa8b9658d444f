from coupondesk.db.base import Base  # noqa: F401
from coupondesk.models.coupons import Coupon, CouponRedemption, CouponStatus, DiscountKind  # noqa: F401

__all__ = [
    "Base",
    "Coupon",
    "CouponRedemption",
    "CouponStatus",
    "DiscountKind",
]
