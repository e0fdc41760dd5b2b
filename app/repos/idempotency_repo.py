from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.data.models.idempotency import IdempotencyKeyModel


class IdempotencyRepo:
    def __init__(self, db: Session):
        self.db = db

    def get(self, key: str) -> IdempotencyKeyModel | None:
        return self.db.get(IdempotencyKeyModel, key, populate_existing=True)

    def insert(self, entry: IdempotencyKeyModel) -> IdempotencyKeyModel:
        #IntegrityError przy duplikacie klucza - obsluguje wolajacy
        self.db.add(entry)
        self.db.flush()
        return entry

    def reclaim(self, key: str, user_id: int, expected_status: str, expected_updated_at: datetime, now: datetime) -> int:
        #compare-and-set - tylko jedna rownolegla proba przejmie klucz
        res = self.db.execute(
            update(IdempotencyKeyModel)
            .where(
                IdempotencyKeyModel.key == key,
                IdempotencyKeyModel.status == expected_status,
                IdempotencyKeyModel.updated_at == expected_updated_at,
            )
            .values(
                status="IN_PROGRESS",
                user_id=user_id,
                order_id=None,
                order_number=None,
                error_code=None,
                error_message=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def mark_succeeded(self, key: str, order_id: int, order_number: str, now: datetime) -> int:
        res = self.db.execute(
            update(IdempotencyKeyModel)
            .where(IdempotencyKeyModel.key == key, IdempotencyKeyModel.status == "IN_PROGRESS")
            .values(status="SUCCEEDED", order_id=order_id, order_number=order_number, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def mark_failed(self, key: str, error_code: str, error_message: str, now: datetime) -> int:
        res = self.db.execute(
            update(IdempotencyKeyModel)
            .where(IdempotencyKeyModel.key == key, IdempotencyKeyModel.status == "IN_PROGRESS")
            .values(status="FAILED", error_code=error_code, error_message=error_message[:500], updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def expire_stale(self, before: datetime, now: datetime) -> int:
        res = self.db.execute(
            update(IdempotencyKeyModel)
            .where(IdempotencyKeyModel.status == "IN_PROGRESS", IdempotencyKeyModel.updated_at < before)
            .values(status="FAILED", error_code="ABANDONED", error_message="Attempt abandoned", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
