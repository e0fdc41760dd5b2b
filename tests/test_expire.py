from datetime import timedelta
from decimal import Decimal

from sqlalchemy import update

from app.data.models import IdempotencyKeyModel, ReservationModel, StockReservationModel, UserCouponModel
from app.services.coupon_service import CouponRequest, CouponReservationService
from app.tasks.expire import sweep_expired
from app.utils.time import utcnow


def test_sweep_expires_abandoned_checkout_state(db_session, stock_service, lock_service, variants, user, make_coupon):
    _, grant = make_coupon(code="SAVE10")
    stale_hold = stock_service.reserve(10, 1, "session-a", user.id)
    live_hold = stock_service.reserve(11, 1, "session-a", user.id)
    reservation = CouponReservationService(db_session).reserve(
        CouponRequest(code="SAVE10", user_id=user.id, subtotal=Decimal("100.00"), idempotency_key="key-1")
    )
    past = utcnow() - timedelta(minutes=30)
    db_session.execute(
        update(StockReservationModel).where(StockReservationModel.id == stale_hold.reservation_id).values(expires_at=past)
    )
    db_session.execute(update(ReservationModel).where(ReservationModel.id == reservation.id).values(expires_at=past))
    db_session.add(IdempotencyKeyModel(key="key-1", user_id=user.id, status="IN_PROGRESS", created_at=past, updated_at=past))
    db_session.commit()

    summary = sweep_expired(db_session, lock_service)

    assert summary == {
        "stock_reservations_expired": 1,
        "reservations_cancelled": 1,
        "idempotency_keys_failed": 1,
    }
    db_session.expire_all()
    assert db_session.get(StockReservationModel, stale_hold.reservation_id).status == "EXPIRED"
    assert db_session.get(StockReservationModel, live_hold.reservation_id).status == "ACTIVE"
    assert db_session.get(ReservationModel, reservation.id).status == "CANCELLED"
    assert db_session.get(UserCouponModel, grant.id).is_used is False
    assert db_session.get(IdempotencyKeyModel, "key-1").status == "FAILED"


def test_sweep_with_nothing_to_do(db_session, lock_service):
    assert sweep_expired(db_session, lock_service) == {
        "stock_reservations_expired": 0,
        "reservations_cancelled": 0,
        "idempotency_keys_failed": 0,
    }
