from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric
from sqlalchemy.orm import relationship

from app.data.database import Base
from app.utils.time import utcnow


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)

    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String, nullable=False)
    status = Column(String, nullable=False)  # COMPLETED, FAILED, REFUNDED
    provider_transaction_id = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    order = relationship("OrderModel", back_populates="payment")
