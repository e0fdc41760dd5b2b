# app/services/audit_service.py
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.repos.audit_repo import AuditRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)


class AuditService:
    """
    Dziennik audytowy (system_logs), tylko dopisywanie.

    record() - zapis w transakcji wolajacego, rollback razem z nia
    log()    - osobny commit, nigdy nie przerywa obslugi zadania
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = AuditRepo(db)

    def record(self, type: str, action: str, description: str, user_id: int | None = None, ip_address: str | None = None):
        return self.repo.add(type, action, description, user_id, ip_address)

    def log(self, type: str, action: str, description: str, user_id: int | None = None, ip_address: str | None = None):
        try:
            self.repo.add(type, action, description, user_id, ip_address)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            # log nie moze zatrzymac procesu
            logger.error(f"Audit log write failed for {action}: {e}")
