from sqlalchemy import Column, Integer, String, DateTime, Text

from app.data.database import Base
from app.utils.time import utcnow


class SystemLogModel(Base):
    """Append-only audit trail of the checkout lifecycle."""

    __tablename__ = "system_logs"

    id = Column(Integer, primary_key=True)
    type = Column(String, nullable=False)  # INFO, WARNING, ERROR
    action = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    user_id = Column(Integer, nullable=True)
    ip_address = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
