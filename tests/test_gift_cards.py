from datetime import timedelta
from decimal import Decimal

import pytest

from app.data.models import GiftCardModel, NotificationModel, ReservationModel
from app.domain.errors import GiftCardBalanceError, GiftCardRejected
from app.domain.reservations import FinalizeContext
from app.repos.gift_card_repo import GiftCardRepo
from app.services.gift_card_service import GiftCardRequest, GiftCardReservationService
from app.utils.time import utcnow


def _request(user, code="GIFT-100", key="key-1"):
    return GiftCardRequest(code=code, user_id=user.id, idempotency_key=key)


def test_reserve_holds_full_balance(db_session, user, make_gift_card):
    card = make_gift_card(balance="100.00")

    reservation = GiftCardReservationService(db_session).reserve(_request(user))

    assert reservation.hold.gift_card_id == card.id
    assert reservation.hold.amount == Decimal("100.00")
    db_session.expire_all()
    assert db_session.get(GiftCardModel, card.id).current_balance == Decimal("100.00")


def test_reserve_rejects_card_of_another_user(db_session, user, other_user, make_gift_card):
    make_gift_card(user_id=other_user.id)

    with pytest.raises(GiftCardRejected, match="does not belong to you"):
        GiftCardReservationService(db_session).reserve(_request(user))


def test_reserve_rejects_inactive_expired_and_empty_cards(db_session, user, make_gift_card):
    make_gift_card(code="OLD", valid_until=utcnow() - timedelta(days=1))
    make_gift_card(code="EMPTY", balance="0.00")
    service = GiftCardReservationService(db_session)

    with pytest.raises(GiftCardRejected, match="not found or not active"):
        service.reserve(_request(user, code="MISSING"))
    with pytest.raises(GiftCardRejected, match="expired"):
        service.reserve(_request(user, code="OLD"))
    with pytest.raises(GiftCardBalanceError, match="no remaining balance"):
        service.reserve(_request(user, code="EMPTY"))


def test_finalize_debits_applied_amount_and_writes_ledger(db_session, user, make_gift_card):
    card = make_gift_card(balance="100.00", user_id=user.id)
    service = GiftCardReservationService(db_session)
    reservation = service.reserve(_request(user))

    service.finalize(
        reservation.id,
        FinalizeContext(order_id=None, subtotal=Decimal("40.00"), gift_card_applied=Decimal("60.00")),
    )
    db_session.commit()
    db_session.expire_all()

    card = db_session.get(GiftCardModel, card.id)
    assert card.current_balance == Decimal("40.00")
    assert card.status == "ACTIVE"
    ledger = GiftCardRepo(db_session).get_transactions(card.id)
    assert [t.amount for t in ledger] == [Decimal("-60.00")]
    assert db_session.query(NotificationModel).filter_by(user_id=user.id, type="GIFT_CARD_USAGE").count() == 1
    assert db_session.get(ReservationModel, reservation.id).status == "FINALIZED"


def test_finalize_flips_status_when_balance_reaches_zero(db_session, user, make_gift_card):
    card = make_gift_card(balance="50.00")
    service = GiftCardReservationService(db_session)
    reservation = service.reserve(_request(user))

    service.finalize(
        reservation.id,
        FinalizeContext(order_id=None, subtotal=Decimal("1000.00"), gift_card_applied=Decimal("50.00")),
    )
    db_session.commit()
    db_session.expire_all()

    card = db_session.get(GiftCardModel, card.id)
    assert card.current_balance == Decimal("0.00")
    assert card.status == "USED"


def test_finalize_rejects_stale_hold_after_concurrent_spend(db_session, user, make_gift_card):
    card = make_gift_card(balance="100.00")
    service = GiftCardReservationService(db_session)
    reservation = service.reserve(_request(user))

    # inna sesja wydala czesc salda miedzy reserve a finalize
    db_session.query(GiftCardModel).filter_by(id=card.id).update({"current_balance": Decimal("30.00")})
    db_session.commit()

    with pytest.raises(GiftCardBalanceError, match="balance changed"):
        service.finalize(
            reservation.id,
            FinalizeContext(order_id=None, subtotal=Decimal("20.00"), gift_card_applied=Decimal("20.00")),
        )
    db_session.rollback()
    db_session.expire_all()
    assert db_session.get(GiftCardModel, card.id).current_balance == Decimal("30.00")
