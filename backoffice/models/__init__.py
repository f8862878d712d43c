from backoffice.db.base import Base  # noqa: F401
from backoffice.models.user import Admin, User  # noqa: F401
from backoffice.models.coupon import Coupon, CouponUsage  # noqa: F401

__all__ = [
    "Base",
    "Admin",
    "User",
    "Coupon",
    "CouponUsage",
]
