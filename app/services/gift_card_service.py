# app/services/gift_card_service.py
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import Session

from app.data.database import transaction
from app.data.models.reservation import ReservationModel
from app.domain.errors import GiftCardBalanceError, GiftCardRejected
from app.domain.reservations import FinalizeContext, ReservationKind, ReservationStatus
from app.domain.totals import ZERO, money
from app.repos.gift_card_repo import GiftCardRepo
from app.repos.notification_repo import NotificationRepo
from app.services.reservation_service import ReservationService
from app.utils.settings import RESERVATION_TTL_SECONDS
from app.utils.time import as_utc, utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GiftCardRequest:
    code: str
    user_id: int
    idempotency_key: str


class GiftCardReservationService(ReservationService):
    """
    Rezerwacja trzyma cale dostepne saldo karty.
    Blokada nie zamyka salda przed innymi sesjami, dlatego finalize
    sprawdza saldo jeszcze raz i odrzuca nieaktualna rezerwacje.
    """

    kind = ReservationKind.GIFT_CARD
    cancel_action = "GIFT_CARD_RESERVATION_CANCELLED"

    def __init__(self, db: Session):
        super().__init__(db)
        self.cards = GiftCardRepo(db)
        self.notifications = NotificationRepo(db)

    def reserve(self, request: GiftCardRequest) -> ReservationModel:
        with transaction(self.db):
            now = utcnow()
            card = self.cards.get_active_by_code(request.code)

            if not card:
                raise GiftCardRejected("Gift card not found or not active")

            if card.user_id is not None and card.user_id != request.user_id:
                raise GiftCardRejected("This gift card does not belong to you")

            if as_utc(card.valid_until) < now:
                raise GiftCardRejected("This gift card has expired")
            if card.valid_from is not None and as_utc(card.valid_from) > now:
                raise GiftCardRejected("This gift card is not active yet")

            if card.current_balance <= 0:
                raise GiftCardBalanceError("This gift card has no remaining balance")

            reservation = self.reservations.create(
                ReservationModel(
                    kind=self.kind.value,
                    status=ReservationStatus.OPEN.value,
                    idempotency_key=request.idempotency_key,
                    user_id=request.user_id,
                    gift_card_id=card.id,
                    amount=money(card.current_balance),
                    expires_at=now + timedelta(seconds=RESERVATION_TTL_SECONDS),
                )
            )

        logger.info(
            f"Gift card {card.id} reserved for user {request.user_id}: "
            f"amount {reservation.amount}, reservation {reservation.id}"
        )
        return reservation

    def finalize(self, reservation_id: int, ctx: FinalizeContext) -> None:
        reservation = self._load_open(reservation_id)
        hold = reservation.hold
        held = money(hold.amount)
        now = utcnow()

        card = self.cards.get(hold.gift_card_id)
        if not card:
            raise GiftCardRejected("Gift card not found")

        # saldo moglo zostac wydane przez inna sesje miedzy reserve a finalize
        balance = money(card.current_balance)
        if card.status != "ACTIVE" or balance <= ZERO or balance < held:
            raise GiftCardBalanceError("Gift card balance changed since it was reserved, please retry")

        use_amount = min(money(ctx.gift_card_applied), held, balance)

        if self.cards.debit(card.id, required=held, amount=use_amount, now=now) == 0:
            raise GiftCardBalanceError("Gift card balance changed since it was reserved, please retry")

        card = self.cards.get(card.id)
        new_balance = money(card.current_balance)

        self.cards.add_transaction(
            gift_card_id=card.id,
            amount=-use_amount,
            order_id=ctx.order_id,
            description=f"Order payment #{ctx.order_id}, reservation {reservation_id}",
        )

        if card.user_id:
            self.notifications.create(
                user_id=card.user_id,
                type="GIFT_CARD_USAGE",
                message=f"Your gift card was charged {use_amount}. Remaining balance: {new_balance}.",
            )

        self._mark_finalized(reservation_id, ctx.order_id, now)
        self.audit.record(
            "INFO",
            "GIFT_CARD_USED",
            f"Gift card used: ID={card.id}, Amount: {use_amount}, Order: {ctx.order_id}, Reservation: {reservation_id}",
            user_id=reservation.user_id,
        )
        logger.info(
            f"Gift card reservation {reservation_id} finalized for order {ctx.order_id}: "
            f"charged {use_amount}, balance {new_balance}"
        )
