from sqlalchemy import Column, Integer, String, DateTime, Boolean, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from app.data.database import Base
from app.utils.time import utcnow


class CouponModel(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True)
    code = Column(String, nullable=False, unique=True)

    type = Column(String, nullable=False)  # PERCENTAGE, FIXED
    value = Column(Numeric(12, 2), nullable=False)
    min_order_amount = Column(Numeric(12, 2), nullable=True)
    max_discount = Column(Numeric(12, 2), nullable=True)

    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    usage_count = Column(Integer, nullable=False, default=0)
    max_usage = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class UserCouponModel(Base):
    __tablename__ = "user_coupons"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=False)

    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)

    coupon = relationship("CouponModel")

    __table_args__ = (UniqueConstraint("user_id", "coupon_id", name="u_user_coupon"),)
