from datetime import datetime

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from app.data.models.product_variant import ProductVariantModel
from app.data.models.stock_reservation import StockReservationModel


class StockRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_variant(self, variant_id: int) -> ProductVariantModel | None:
        return self.db.get(ProductVariantModel, variant_id, populate_existing=True)

    def active_reserved_quantity(self, variant_id: int, now: datetime) -> int:
        total = self.db.execute(
            select(func.coalesce(func.sum(StockReservationModel.quantity), 0)).where(
                StockReservationModel.variant_id == variant_id,
                StockReservationModel.status == "ACTIVE",
                StockReservationModel.expires_at > now,
            )
        ).scalar_one()
        return int(total)

    def create_reservation(self, reservation: StockReservationModel) -> StockReservationModel:
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def get_reservation(self, reservation_id: int) -> StockReservationModel | None:
        return self.db.get(StockReservationModel, reservation_id, populate_existing=True)

    def set_status(self, reservation_id: int, old_status: str, new_status: str, order_id: int | None = None) -> int:
        values = {"status": new_status}
        if order_id is not None:
            values["order_id"] = order_id
        res = self.db.execute(
            update(StockReservationModel)
            .where(StockReservationModel.id == reservation_id, StockReservationModel.status == old_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def decrement_stock(self, variant_id: int, quantity: int) -> int:
        res = self.db.execute(
            update(ProductVariantModel)
            .where(ProductVariantModel.id == variant_id, ProductVariantModel.stock >= quantity)
            .values(stock=ProductVariantModel.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def expire_active(self, now: datetime) -> int:
        res = self.db.execute(
            update(StockReservationModel)
            .where(StockReservationModel.status == "ACTIVE", StockReservationModel.expires_at < now)
            .values(status="EXPIRED")
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def cancel_all(self, user_id: int | None = None, session_id: str | None = None) -> int:
        stmt = update(StockReservationModel).where(StockReservationModel.status == "ACTIVE")
        if user_id is not None:
            stmt = stmt.where(StockReservationModel.user_id == user_id)
        if session_id is not None:
            stmt = stmt.where(StockReservationModel.session_id == session_id)
        res = self.db.execute(
            stmt.values(status="CANCELLED").execution_options(synchronize_session=False)
        )
        return res.rowcount
