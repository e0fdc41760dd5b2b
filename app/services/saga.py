# app/services/saga.py
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.data.models.reservation import ReservationModel
from app.domain.reservations import FinalizeContext
from app.repos.reservation_repo import ReservationRepo
from app.services.reservation_service import ReservationService
from app.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OpenReservation:
    id: int
    kind: str


class CheckoutSaga:
    """
    Koordynator sagi jednej proby checkout.

    Kroki (rezerwacje) ida po kolei; kazda otwarta rezerwacja jest zapamietana
    w pamieci razem z jej kompensacja (cancel wlasciwego serwisu).
    Jesli proba przerwie sie przed commitem zamowienia - compensate()
    anuluje wszystko w odwrotnej kolejnosci.
    """

    def __init__(self, db: Session, services: list[ReservationService]):
        self.reservations = ReservationRepo(db)
        self.services = {s.kind.value: s for s in services}
        self.open: list[OpenReservation] = []

    def reserve(self, service: ReservationService, request) -> ReservationModel:
        reservation = service.reserve(request)
        self.open.append(OpenReservation(id=reservation.id, kind=reservation.kind))
        return reservation

    def finalize_all(self, ctx: FinalizeContext):
        #wewnatrz transakcji zamowienia - blad = rollback calosci
        for step in self.open:
            self.services[step.kind].finalize(step.id, ctx)

    def release(self, reservation_id: int):
        step = next((s for s in self.open if s.id == reservation_id), None)
        if step is None:
            return
        self.services[step.kind].cancel(step.id)
        self.open.remove(step)

    def complete(self):
        #zamowienie zacommitowane - nie ma czego kompensowac
        self.open.clear()

    def compensate(self) -> int:
        """
        Best effort: blad jednego cancel jest logowany, reszta leci dalej.
        Zwraca liczbe faktycznie anulowanych rezerwacji.
        """
        cancelled = 0
        for step in reversed(self.open):
            try:
                if self.services[step.kind].cancel(step.id):
                    cancelled += 1
            except Exception:
                logger.exception(f"Compensation failed for {step.kind} reservation {step.id}")

        if self.open:
            logger.info(f"Compensation done: {cancelled}/{len(self.open)} reservations cancelled")
        self.open.clear()
        return cancelled

    def release_orphans(self, idempotency_key: str) -> int:
        """Anuluje rezerwacje OPEN pozostawione przez wczesniejsze podejscie z tym samym kluczem."""
        orphans = self.reservations.list_open_by_key(idempotency_key)
        for orphan in orphans:
            logger.warning(f"Cancelling orphaned {orphan.kind} reservation {orphan.id} (key {idempotency_key})")
            self.open.append(OpenReservation(id=orphan.id, kind=orphan.kind))
        return self.compensate()
