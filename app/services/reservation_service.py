# app/services/reservation_service.py
from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy.orm import Session

from app.data.database import transaction
from app.data.models.reservation import ReservationModel
from app.domain.errors import ConflictError
from app.domain.reservations import FinalizeContext, ReservationKind, ReservationStatus
from app.repos.reservation_repo import ReservationRepo
from app.services.audit_service import AuditService
from app.utils.time import utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


class ReservationService(ABC):
    """
    Dwufazowy protokol rezerwacji: reserve -> finalize albo cancel.

    reserve  - walidacja + zapis blokady, we wlasnej (serializable) transakcji
    finalize - trwala zmiana stanu, wewnatrz transakcji skladania zamowienia
    cancel   - idempotentne, bezpieczne po finalize (wtedy no-op)
    """

    kind: ReservationKind
    cancel_action: str

    def __init__(self, db: Session):
        self.db = db
        self.reservations = ReservationRepo(db)
        self.audit = AuditService(db)

    @abstractmethod
    def reserve(self, request) -> ReservationModel:
        ...

    @abstractmethod
    def finalize(self, reservation_id: int, ctx: FinalizeContext) -> None:
        ...

    def cancel(self, reservation_id: int) -> bool:
        """True gdy to wywolanie przestawilo rezerwacje z OPEN na CANCELLED."""
        with transaction(self.db):
            now = utcnow()
            if self.reservations.mark_cancelled(reservation_id, now) == 0:
                current = self.reservations.get(reservation_id)
                status = current.status if current else None
                if status == ReservationStatus.FINALIZED.value:
                    logger.info(f"{self.kind.value} reservation {reservation_id} already finalized, cancel is a no-op")
                else:
                    logger.info(f"{self.kind.value} reservation {reservation_id} not open ({status}), nothing to cancel")
                return False

            current = self.reservations.get(reservation_id)
            self.audit.record(
                "INFO",
                self.cancel_action,
                f"{self.kind.value} reservation cancelled. Reservation ID: {reservation_id}",
                user_id=current.user_id if current else None,
            )

        logger.info(f"{self.kind.value} reservation {reservation_id} cancelled")
        return True

    def _load_open(self, reservation_id: int) -> ReservationModel:
        reservation = self.reservations.get(reservation_id)
        if not reservation or reservation.kind != self.kind.value:
            raise ConflictError(f"{self.kind.value} reservation {reservation_id} not found")
        if reservation.status != ReservationStatus.OPEN.value:
            raise ConflictError(
                f"{self.kind.value} reservation {reservation_id} is no longer open ({reservation.status})"
            )
        return reservation

    def _mark_finalized(self, reservation_id: int, order_id: int, now: datetime):
        if self.reservations.mark_finalized(reservation_id, order_id, now) == 0:
            raise ConflictError(f"{self.kind.value} reservation {reservation_id} was resolved concurrently")
