# app/domain/reservations.py
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class ReservationKind(str, Enum):
    STOCK = "STOCK"
    COUPON = "COUPON"
    GIFT_CARD = "GIFT_CARD"


class ReservationStatus(str, Enum):
    OPEN = "OPEN"
    FINALIZED = "FINALIZED"
    CANCELLED = "CANCELLED"


class StockReservationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CONVERTED = "CONVERTED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# Holds - jeden typ na rodzaj zasobu, zamiast JSONa w logu

@dataclass(frozen=True)
class StockHold:
    stock_reservation_id: int
    variant_id: int
    quantity: int
    kind: ReservationKind = field(default=ReservationKind.STOCK, init=False)


@dataclass(frozen=True)
class CouponHold:
    user_coupon_id: int
    coupon_id: int
    discount: Decimal
    kind: ReservationKind = field(default=ReservationKind.COUPON, init=False)


@dataclass(frozen=True)
class GiftCardHold:
    gift_card_id: int
    amount: Decimal
    kind: ReservationKind = field(default=ReservationKind.GIFT_CARD, init=False)


@dataclass(frozen=True)
class FinalizeContext:
    """Co transakcja zamowienia wie w chwili finalizacji rezerwacji."""

    order_id: int
    subtotal: Decimal
    gift_card_applied: Decimal = Decimal("0.00")


@dataclass(frozen=True)
class StockReserveResult:
    success: bool
    reservation_id: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class StockConversionItem:
    reservation_id: int
    converted: bool
    message: str | None = None


@dataclass(frozen=True)
class StockConversionResult:
    all_converted: bool
    results: list[StockConversionItem]

    @property
    def failed(self) -> list[StockConversionItem]:
        return [r for r in self.results if not r.converted]
