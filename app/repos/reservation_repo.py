from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.data.models.reservation import ReservationModel


class ReservationRepo:
    def __init__(self, db: Session):
        self.db = db

    def create(self, reservation: ReservationModel) -> ReservationModel:
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def get(self, reservation_id: int) -> ReservationModel | None:
        return self.db.get(ReservationModel, reservation_id, populate_existing=True)

    def list_open_by_key(self, idempotency_key: str) -> list[ReservationModel]:
        return list(
            self.db.execute(
                select(ReservationModel)
                .where(ReservationModel.idempotency_key == idempotency_key, ReservationModel.status == "OPEN")
                .order_by(ReservationModel.id)
            ).scalars()
        )

    def list_expired_open(self, now: datetime) -> list[ReservationModel]:
        return list(
            self.db.execute(
                select(ReservationModel).where(ReservationModel.status == "OPEN", ReservationModel.expires_at < now)
            ).scalars()
        )

    def mark_finalized(self, reservation_id: int, order_id: int, now: datetime) -> int:
        res = self.db.execute(
            update(ReservationModel)
            .where(ReservationModel.id == reservation_id, ReservationModel.status == "OPEN")
            .values(status="FINALIZED", order_id=order_id, resolved_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def mark_cancelled(self, reservation_id: int, now: datetime) -> int:
        res = self.db.execute(
            update(ReservationModel)
            .where(ReservationModel.id == reservation_id, ReservationModel.status == "OPEN")
            .values(status="CANCELLED", resolved_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount
