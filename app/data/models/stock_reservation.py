from sqlalchemy import Column, Integer, ForeignKey, String, DateTime

from app.data.database import Base
from app.utils.time import utcnow


class StockReservationModel(Base):
    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)

    session_id = Column(String, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    status = Column(String, nullable=False, default="ACTIVE")  # ACTIVE, CONVERTED, EXPIRED, CANCELLED
    order_id = Column(Integer, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
