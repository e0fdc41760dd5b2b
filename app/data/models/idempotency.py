from sqlalchemy import Column, Integer, String, DateTime

from app.data.database import Base
from app.utils.time import utcnow


class IdempotencyKeyModel(Base):
    __tablename__ = "idempotency_keys"

    #klucz glowny = unikalnosc klucza, claim to zwykly INSERT
    key = Column(String(128), primary_key=True)
    user_id = Column(Integer, nullable=False)

    status = Column(String, nullable=False)  # IN_PROGRESS, SUCCEEDED, FAILED
    order_id = Column(Integer, nullable=True)
    order_number = Column(String, nullable=True)
    error_code = Column(String, nullable=True)
    error_message = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
