# app/tasks/expire.py
from sqlalchemy.orm import Session

from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.repos.reservation_repo import ReservationRepo
from app.services.coupon_service import CouponReservationService
from app.services.gift_card_service import GiftCardReservationService
from app.services.idempotency_service import IdempotencyGuard
from app.services.lock_service import LockService
from app.services.stock_service import StockService
from app.utils.time import utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)
lock_service = LockService()


def sweep_expired(db: Session, locks: LockService = lock_service) -> dict:
    """
    Sprzatanie porzuconych prob checkout:
    - aktywne rezerwacje stanow po terminie -> EXPIRED
    - otwarte rezerwacje kuponow i kart po terminie -> CANCELLED
    - klucze idempotencji IN_PROGRESS bez postepu -> FAILED
    """
    stock_expired = StockService(db, locks).cleanup_expired_reservations()

    services = {s.kind.value: s for s in (CouponReservationService(db), GiftCardReservationService(db))}
    expired = ReservationRepo(db).list_expired_open(utcnow())
    logger.info(f"Found {len(expired)} open reservations to expire")

    cancelled = 0
    for reservation in expired:
        try:
            if services[reservation.kind].cancel(reservation.id):
                cancelled += 1
        except Exception as e:
            logger.warning(f"Failed to cancel expired {reservation.kind} reservation {reservation.id}: {e}")

    keys_failed = IdempotencyGuard(db).expire_stale()

    return {
        "stock_reservations_expired": stock_expired,
        "reservations_cancelled": cancelled,
        "idempotency_keys_failed": keys_failed,
    }


@celery_app.task(name="app.tasks.expire.expire_reservations_task")
def expire_reservations_task():
    logger.info("Expire reservations task started")

    db = SessionLocal()
    try:
        summary = sweep_expired(db)
        logger.info(f"Expire reservations task finished: {summary}")
        return summary
    finally:
        db.close()
