# app/services/stock_service.py
from datetime import timedelta

from sqlalchemy.orm import Session

from app.data.database import transaction
from app.data.models.stock_reservation import StockReservationModel
from app.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from app.domain.reservations import (
    StockConversionItem,
    StockConversionResult,
    StockReservationStatus,
    StockReserveResult,
)
from app.repos.stock_repo import StockRepo
from app.services.lock_service import LockService
from app.utils.settings import STOCK_LOCK_TTL_SECONDS, STOCK_RESERVATION_MINUTES
from app.utils.time import as_utc, utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)

ACTIVE = StockReservationStatus.ACTIVE.value


class StockService:
    """
    Rezerwacje stanow magazynowych wariantow.
    reserve -> convert_reservations_to_order albo cancel_reservation.
    """

    def __init__(self, db: Session, lock_service: LockService):
        self.db = db
        self.repo = StockRepo(db)
        self.lock_service = lock_service

    def reserve(
        self,
        variant_id: int,
        quantity: int,
        session_id: str,
        user_id: int | None = None,
        minutes: int = STOCK_RESERVATION_MINUTES,
    ) -> StockReserveResult:
        if quantity <= 0:
            return StockReserveResult(success=False, message=f"Invalid quantity: {quantity}")

        if not session_id:
            return StockReserveResult(success=False, message="Invalid session id")

        variant = self.repo.get_variant(variant_id)
        if not variant:
            return StockReserveResult(success=False, message=f"Variant {variant_id} not found")

        # Redis lock - sprawdzenie dostepnosci i zapis rezerwacji jako jedna operacja
        locked = self.lock_service.acquire_variant_lock(
            variant_id=variant_id,
            owner=session_id,
            ttl=STOCK_LOCK_TTL_SECONDS,
        )
        if not locked:
            return StockReserveResult(
                success=False,
                message=f"Variant {variant_id} is being reserved by another session, retry",
            )

        try:
            with transaction(self.db):
                now = utcnow()
                variant = self.repo.get_variant(variant_id)
                reserved = self.repo.active_reserved_quantity(variant_id, now)
                available = variant.stock - reserved

                logger.info(
                    f"Variant {variant_id}: stock {variant.stock}, reserved {reserved}, "
                    f"available {available}, requested {quantity}"
                )

                if available < quantity:
                    return StockReserveResult(
                        success=False,
                        message=f"Insufficient stock for variant {variant_id}. Requested: {quantity}",
                    )

                reservation = self.repo.create_reservation(
                    StockReservationModel(
                        variant_id=variant_id,
                        quantity=quantity,
                        session_id=session_id,
                        user_id=user_id,
                        status=ACTIVE,
                        expires_at=now + timedelta(minutes=minutes),
                    )
                )
                reservation_id = reservation.id
        finally:
            self.lock_service.release_variant_lock(variant_id, session_id)

        logger.info(f"Stock reservation {reservation_id} created for variant {variant_id} x{quantity}")
        return StockReserveResult(success=True, reservation_id=reservation_id)

    def cancel_reservation(self, reservation_id: int) -> bool:
        with transaction(self.db):
            reservation = self.repo.get_reservation(reservation_id)
            if not reservation:
                raise NotFoundError(f"Stock reservation {reservation_id} not found")

            if reservation.status != ACTIVE:
                # juz anulowana / skonwertowana - traktujemy jako sukces
                return True

            self.repo.set_status(reservation_id, ACTIVE, StockReservationStatus.CANCELLED.value)

        logger.info(f"Stock reservation {reservation_id} cancelled")
        return True

    def convert_reservations_to_order(self, reservation_ids: list[int], order_id: int) -> StockConversionResult:
        """
        Kazda rezerwacja konwertowana osobno - blad jednej nie zatrzymuje pozostalych.
        """
        results = []
        for reservation_id in reservation_ids:
            try:
                results.append(self._convert_one(reservation_id, order_id))
            except ValidationError as e:
                logger.warning(f"Stock reservation {reservation_id} not converted: {e.message}")
                results.append(StockConversionItem(reservation_id, converted=False, message=e.message))
            except Exception as e:
                logger.exception(f"Stock reservation {reservation_id} conversion crashed")
                results.append(StockConversionItem(reservation_id, converted=False, message=str(e)))

        return StockConversionResult(
            all_converted=all(r.converted for r in results),
            results=results,
        )

    def _convert_one(self, reservation_id: int, order_id: int) -> StockConversionItem:
        with transaction(self.db):
            reservation = self.repo.get_reservation(reservation_id)
            if not reservation:
                raise NotFoundError(f"Stock reservation {reservation_id} not found")

            if reservation.status != ACTIVE:
                raise ValidationError(
                    f"Stock reservation {reservation_id} is not active. Current status: {reservation.status}"
                )

            if as_utc(reservation.expires_at) < utcnow():
                self.repo.set_status(reservation_id, ACTIVE, StockReservationStatus.EXPIRED.value)
                return StockConversionItem(
                    reservation_id, converted=False, message=f"Stock reservation {reservation_id} has expired"
                )

            # update ... set stock = stock - q where stock >= q
            if self.repo.decrement_stock(reservation.variant_id, reservation.quantity) == 0:
                raise InsufficientStockError(
                    f"Insufficient stock for variant {reservation.variant_id} to fulfil reservation {reservation_id}"
                )

            if self.repo.set_status(reservation_id, ACTIVE, StockReservationStatus.CONVERTED.value, order_id) == 0:
                raise ValidationError(f"Stock reservation {reservation_id} changed concurrently")

        logger.info(f"Stock reservation {reservation_id} converted for order {order_id}")
        return StockConversionItem(reservation_id, converted=True)

    def cancel_all_reservations(self, user_id: int | None = None, session_id: str | None = None) -> int:
        if user_id is None and not session_id:
            raise ValidationError("Either user_id or session_id must be provided")

        with transaction(self.db):
            count = self.repo.cancel_all(user_id=user_id, session_id=session_id)

        logger.info(f"Cancelled {count} stock reservations (user={user_id}, session={session_id})")
        return count

    def cleanup_expired_reservations(self) -> int:
        with transaction(self.db):
            count = self.repo.expire_active(utcnow())

        if count:
            logger.info(f"Expired {count} stock reservations")
        return count
