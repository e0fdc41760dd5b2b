# app/services/coupon_service.py
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from app.data.database import transaction
from app.data.models.coupon import CouponModel, UserCouponModel
from app.data.models.reservation import ReservationModel
from app.domain.errors import CouponRejected, CouponUsageExhausted
from app.domain.reservations import FinalizeContext, ReservationKind, ReservationStatus
from app.domain.totals import money
from app.repos.coupon_repo import CouponRepo
from app.services.reservation_service import ReservationService
from app.utils.settings import RESERVATION_TTL_SECONDS
from app.utils.time import as_utc, utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CouponRequest:
    code: str
    user_id: int
    subtotal: Decimal
    idempotency_key: str


def compute_discount(coupon: CouponModel, subtotal: Decimal) -> Decimal:
    value = Decimal(str(coupon.value))
    if coupon.type == "PERCENTAGE":
        discount = subtotal * value / Decimal(100)
        if coupon.max_discount is not None and discount > coupon.max_discount:
            discount = Decimal(str(coupon.max_discount))
    else:
        # rabat nie moze przekroczyc wartosci zamowienia
        discount = min(value, subtotal)
    return money(discount)


def validate_grant(
    grant: UserCouponModel | None,
    coupon: CouponModel | None,
    subtotal: Decimal,
    now: datetime,
) -> CouponModel:
    """
    Sprawdzenia po kolei, pierwszy blad wygrywa:
    przydzial istnieje -> nieuzyty -> okres waznosci -> minimalne zamowienie -> globalny limit uzyc.
    """
    if grant is None or coupon is None or not coupon.is_active:
        raise CouponRejected("Coupon not found or not assigned to you")

    if grant.is_used:
        raise CouponRejected("This coupon has already been used")

    if coupon.valid_until is not None and as_utc(coupon.valid_until) < now:
        raise CouponRejected("This coupon has expired")
    if coupon.valid_from is not None and as_utc(coupon.valid_from) > now:
        raise CouponRejected("This coupon is not active yet")

    if coupon.min_order_amount is not None and subtotal < coupon.min_order_amount:
        raise CouponRejected(f"Minimum order amount for this coupon is {money(coupon.min_order_amount)}")

    if coupon.max_usage is not None and coupon.usage_count >= coupon.max_usage:
        raise CouponUsageExhausted("Coupon usage limit has been reached")

    return coupon


class CouponReservationService(ReservationService):
    kind = ReservationKind.COUPON
    cancel_action = "COUPON_RESERVATION_CANCELLED"

    def __init__(self, db: Session):
        super().__init__(db)
        self.coupons = CouponRepo(db)

    def reserve(self, request: CouponRequest) -> ReservationModel:
        subtotal = money(request.subtotal)

        with transaction(self.db):
            now = utcnow()
            grant = self.coupons.get_grant_by_code(request.user_id, request.code)
            coupon = self.coupons.get_coupon(grant.coupon_id) if grant else None
            coupon = validate_grant(grant, coupon, subtotal, now)
            discount = compute_discount(coupon, subtotal)

            # flaga used jeszcze nie ruszana - dopiero przy finalize
            reservation = self.reservations.create(
                ReservationModel(
                    kind=self.kind.value,
                    status=ReservationStatus.OPEN.value,
                    idempotency_key=request.idempotency_key,
                    user_id=request.user_id,
                    user_coupon_id=grant.id,
                    coupon_id=coupon.id,
                    amount=discount,
                    expires_at=now + timedelta(seconds=RESERVATION_TTL_SECONDS),
                )
            )

        logger.info(
            f"Coupon {request.code} reserved for user {request.user_id}: "
            f"discount {discount}, reservation {reservation.id}"
        )
        return reservation

    def finalize(self, reservation_id: int, ctx: FinalizeContext) -> None:
        reservation = self._load_open(reservation_id)
        hold = reservation.hold
        now = utcnow()

        # ponowna walidacja - subtotal mogl sie zmienic od rezerwacji
        grant = self.coupons.get_grant(hold.user_coupon_id)
        coupon = self.coupons.get_coupon(hold.coupon_id)
        coupon = validate_grant(grant, coupon, money(ctx.subtotal), now)

        if compute_discount(coupon, money(ctx.subtotal)) != money(hold.discount):
            raise CouponRejected("Coupon discount changed since it was reserved, please retry")

        if self.coupons.mark_grant_used(grant.id, ctx.order_id, now) == 0:
            raise CouponRejected("This coupon has already been used")

        if self.coupons.increment_usage(coupon.id) == 0:
            raise CouponUsageExhausted("Coupon usage limit has been reached")

        self._mark_finalized(reservation_id, ctx.order_id, now)
        self.audit.record(
            "INFO",
            "COUPON_USED",
            f"Coupon used: ID={coupon.id}, UserCouponID={grant.id}, Order={ctx.order_id}, Reservation={reservation_id}",
            user_id=reservation.user_id,
        )
        logger.info(f"Coupon reservation {reservation_id} finalized for order {ctx.order_id}")
