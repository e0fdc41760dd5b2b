from datetime import timedelta
from decimal import Decimal

import pytest

from app.data.models import CouponModel, ReservationModel, UserCouponModel
from app.domain.errors import ConflictError, CouponRejected, CouponUsageExhausted, ValidationError
from app.domain.reservations import FinalizeContext
from app.services.coupon_service import CouponRequest, CouponReservationService, compute_discount
from app.utils.time import utcnow


def _request(user, code="SAVE10", subtotal="1000.00", key="key-1"):
    return CouponRequest(code=code, user_id=user.id, subtotal=Decimal(subtotal), idempotency_key=key)


def test_percentage_discount_is_capped():
    coupon = CouponModel(type="PERCENTAGE", value=Decimal("20"), max_discount=Decimal("50.00"))

    assert compute_discount(coupon, Decimal("1000.00")) == Decimal("50.00")
    assert compute_discount(coupon, Decimal("100.00")) == Decimal("20.00")


def test_fixed_discount_never_exceeds_subtotal():
    coupon = CouponModel(type="FIXED", value=Decimal("200"))

    assert compute_discount(coupon, Decimal("150.00")) == Decimal("150.00")
    assert compute_discount(coupon, Decimal("1000.00")) == Decimal("200.00")


def test_reserve_stores_discount_without_using_the_grant(db_session, user, make_coupon):
    coupon, grant = make_coupon(type="FIXED", value="200", min_order_amount=Decimal("500"))

    reservation = CouponReservationService(db_session).reserve(_request(user))

    assert reservation.status == "OPEN"
    assert reservation.hold.discount == Decimal("200.00")
    assert reservation.hold.user_coupon_id == grant.id
    db_session.expire_all()
    assert db_session.get(UserCouponModel, grant.id).is_used is False


def test_reserve_rejects_unknown_or_foreign_coupon(db_session, user, other_user, make_coupon):
    make_coupon(code="NOT-MINE", user_id=other_user.id)
    service = CouponReservationService(db_session)

    with pytest.raises(CouponRejected, match="not found or not assigned"):
        service.reserve(_request(user, code="NOT-MINE"))
    with pytest.raises(CouponRejected, match="not found or not assigned"):
        service.reserve(_request(user, code="NOPE"))


def test_reserve_validation_order_used_before_expired(db_session, user, make_coupon):
    _, grant = make_coupon(valid_until=utcnow() - timedelta(days=1))
    grant.is_used = True
    db_session.commit()

    with pytest.raises(CouponRejected, match="already been used"):
        CouponReservationService(db_session).reserve(_request(user))


def test_reserve_rejects_expired_and_not_yet_active(db_session, user, make_coupon):
    make_coupon(code="OLD", valid_until=utcnow() - timedelta(days=1))
    make_coupon(code="SOON", valid_from=utcnow() + timedelta(days=1))
    service = CouponReservationService(db_session)

    with pytest.raises(CouponRejected, match="expired"):
        service.reserve(_request(user, code="OLD"))
    with pytest.raises(CouponRejected, match="not active yet"):
        service.reserve(_request(user, code="SOON"))


def test_reserve_rejects_below_minimum_order(db_session, user, make_coupon):
    make_coupon(min_order_amount=Decimal("500"))

    with pytest.raises(CouponRejected, match="Minimum order amount for this coupon is 500.00"):
        CouponReservationService(db_session).reserve(_request(user, subtotal="499.99"))


def test_reserve_rejects_exhausted_coupon(db_session, user, make_coupon):
    make_coupon(max_usage=1)
    db_session.query(CouponModel).update({"usage_count": 1})
    db_session.commit()

    with pytest.raises(CouponUsageExhausted) as exc:
        CouponReservationService(db_session).reserve(_request(user))

    assert exc.value.code == "COUPON_EXHAUSTED"


def test_finalize_marks_grant_used_and_counts_usage(db_session, user, make_coupon):
    coupon, grant = make_coupon(type="FIXED", value="200")
    service = CouponReservationService(db_session)
    reservation = service.reserve(_request(user))

    service.finalize(reservation.id, FinalizeContext(order_id=None, subtotal=Decimal("1000.00")))
    db_session.commit()
    db_session.expire_all()

    assert db_session.get(UserCouponModel, grant.id).is_used is True
    assert db_session.get(CouponModel, coupon.id).usage_count == 1
    assert db_session.get(ReservationModel, reservation.id).status == "FINALIZED"


def test_finalize_revalidates_minimum_order_against_order_subtotal(db_session, user, make_coupon):
    make_coupon(type="FIXED", value="50", min_order_amount=Decimal("500"))
    service = CouponReservationService(db_session)
    reservation = service.reserve(_request(user, subtotal="600.00"))

    with pytest.raises(CouponRejected, match="Minimum order amount"):
        service.finalize(reservation.id, FinalizeContext(order_id=None, subtotal=Decimal("400.00")))


def test_finalize_rejects_changed_discount(db_session, user, make_coupon):
    make_coupon(type="PERCENTAGE", value="10")
    service = CouponReservationService(db_session)
    reservation = service.reserve(_request(user, subtotal="1000.00"))

    with pytest.raises(CouponRejected, match="discount changed"):
        service.finalize(reservation.id, FinalizeContext(order_id=None, subtotal=Decimal("900.00")))


def test_cancel_is_idempotent_and_noop_after_finalize(db_session, user, make_coupon):
    make_coupon()
    service = CouponReservationService(db_session)
    first = service.reserve(_request(user, key="a"))
    second = service.reserve(_request(user, key="b"))

    assert service.cancel(first.id) is True
    assert service.cancel(first.id) is False

    service.finalize(second.id, FinalizeContext(order_id=None, subtotal=Decimal("1000.00")))
    db_session.commit()
    assert service.cancel(second.id) is False
    db_session.expire_all()
    assert db_session.get(ReservationModel, second.id).status == "FINALIZED"


def test_finalize_of_cancelled_reservation_conflicts(db_session, user, make_coupon):
    make_coupon()
    service = CouponReservationService(db_session)
    reservation = service.reserve(_request(user))
    service.cancel(reservation.id)

    with pytest.raises(ConflictError):
        service.finalize(reservation.id, FinalizeContext(order_id=None, subtotal=Decimal("1000.00")))


def test_second_open_hold_cannot_finalize_after_first_commits(db_session, user, make_coupon):
    coupon, grant = make_coupon(type="FIXED", value="200")
    service = CouponReservationService(db_session)
    # dwie rownolegle proby trzymaja ten sam przydzial
    first = service.reserve(_request(user, key="a"))
    second = service.reserve(_request(user, key="b"))

    service.finalize(first.id, FinalizeContext(order_id=None, subtotal=Decimal("1000.00")))
    db_session.commit()

    with pytest.raises(ValidationError):
        service.finalize(second.id, FinalizeContext(order_id=None, subtotal=Decimal("1000.00")))
    db_session.rollback()

    db_session.expire_all()
    assert db_session.get(CouponModel, coupon.id).usage_count == 1
    assert db_session.get(UserCouponModel, grant.id).is_used is True
    assert db_session.get(ReservationModel, first.id).status == "FINALIZED"
    assert db_session.get(ReservationModel, second.id).status == "OPEN"
