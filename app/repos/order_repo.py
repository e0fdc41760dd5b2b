# app/repos/order_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session
from app.data.models.order import OrderModel
from app.data.models.order_timeline import OrderTimelineModel
from app.data.models.payment import PaymentModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        #bez commita - zamowienie powstaje wewnatrz transakcji checkout
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def order_number_exists(self, order_number: str) -> bool:
        return self.db.execute(
            select(OrderModel.id).where(OrderModel.order_number == order_number)
        ).first() is not None

    def add_timeline_entry(self, order_id: int, status: str, description: str) -> OrderTimelineModel:
        entry = OrderTimelineModel(order_id=order_id, status=status, description=description)
        self.db.add(entry)
        self.db.flush()
        return entry

    def get_timeline(self, order_id: int) -> list[OrderTimelineModel]:
        return list(
            self.db.execute(
                select(OrderTimelineModel)
                .where(OrderTimelineModel.order_id == order_id)
                .order_by(OrderTimelineModel.date, OrderTimelineModel.id)
            ).scalars()
        )

    def create_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment
