from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey

from app.data.database import Base
from app.utils.time import utcnow


class GiftCardModel(Base):
    __tablename__ = "gift_cards"

    id = Column(Integer, primary_key=True)
    code = Column(String, nullable=False, unique=True)

    initial_balance = Column(Numeric(12, 2), nullable=False)
    current_balance = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="ACTIVE")  # ACTIVE, USED, EXPIRED

    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=False)
    last_used = Column(DateTime(timezone=True), nullable=True)


class GiftCardTransactionModel(Base):
    __tablename__ = "gift_card_transactions"

    id = Column(Integer, primary_key=True)
    gift_card_id = Column(Integer, ForeignKey("gift_cards.id"), nullable=False, index=True)
    #ujemna kwota = wydane saldo
    amount = Column(Numeric(12, 2), nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    description = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
