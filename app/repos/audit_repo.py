from sqlalchemy import select
from sqlalchemy.orm import Session

from app.data.models.system_log import SystemLogModel


class AuditRepo:
    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        type: str,
        action: str,
        description: str,
        user_id: int | None = None,
        ip_address: str | None = None,
    ) -> SystemLogModel:
        entry = SystemLogModel(
            type=type,
            action=action,
            description=description,
            user_id=user_id,
            ip_address=ip_address,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_by_action(self, action: str) -> list[SystemLogModel]:
        return list(
            self.db.execute(
                select(SystemLogModel).where(SystemLogModel.action == action).order_by(SystemLogModel.id)
            ).scalars()
        )
