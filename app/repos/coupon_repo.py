from datetime import datetime

from sqlalchemy import select, update, or_
from sqlalchemy.orm import Session

from app.data.models.coupon import CouponModel, UserCouponModel


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_grant_by_code(self, user_id: int, code: str) -> UserCouponModel | None:
        return self.db.execute(
            select(UserCouponModel)
            .join(CouponModel, UserCouponModel.coupon_id == CouponModel.id)
            .where(
                UserCouponModel.user_id == user_id,
                CouponModel.code == code,
                CouponModel.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
        ).scalars().first()

    def get_grant(self, grant_id: int) -> UserCouponModel | None:
        return self.db.get(UserCouponModel, grant_id, populate_existing=True)

    def get_coupon(self, coupon_id: int) -> CouponModel | None:
        return self.db.get(CouponModel, coupon_id, populate_existing=True)

    def mark_grant_used(self, grant_id: int, order_id: int, now: datetime) -> int:
        #unused -> used tylko raz
        res = self.db.execute(
            update(UserCouponModel)
            .where(UserCouponModel.id == grant_id, UserCouponModel.is_used.is_(False))
            .values(is_used=True, used_at=now, order_id=order_id)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def increment_usage(self, coupon_id: int) -> int:
        res = self.db.execute(
            update(CouponModel)
            .where(
                CouponModel.id == coupon_id,
                or_(CouponModel.max_usage.is_(None), CouponModel.usage_count < CouponModel.max_usage),
            )
            .values(usage_count=CouponModel.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
