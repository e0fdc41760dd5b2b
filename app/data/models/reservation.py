from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric

from app.data.database import Base
from app.domain.reservations import CouponHold, GiftCardHold, ReservationKind
from app.utils.time import utcnow


class ReservationModel(Base):
    """
    Tymczasowa blokada zasobu (kupon / karta podarunkowa) w ramach jednej proby checkout.
    OPEN -> FINALIZED albo OPEN -> CANCELLED, nigdy oba.
    """

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True)
    kind = Column(String, nullable=False)  # COUPON, GIFT_CARD
    status = Column(String, nullable=False, default="OPEN")  # OPEN, FINALIZED, CANCELLED

    idempotency_key = Column(String, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    #kolumny zalezne od rodzaju
    user_coupon_id = Column(Integer, ForeignKey("user_coupons.id"), nullable=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=True)
    gift_card_id = Column(Integer, ForeignKey("gift_cards.id"), nullable=True)
    amount = Column(Numeric(12, 2), nullable=False)

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def hold(self) -> CouponHold | GiftCardHold:
        if self.kind == ReservationKind.COUPON.value:
            return CouponHold(
                user_coupon_id=self.user_coupon_id,
                coupon_id=self.coupon_id,
                discount=self.amount,
            )
        if self.kind == ReservationKind.GIFT_CARD.value:
            return GiftCardHold(gift_card_id=self.gift_card_id, amount=self.amount)
        raise ValueError(f"Unknown reservation kind: {self.kind}")
