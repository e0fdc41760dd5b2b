# app/domain/orders.py
from dataclasses import dataclass, field
from decimal import Decimal

from app.domain.reservations import StockHold
from app.domain.totals import OrderTotals


@dataclass(frozen=True)
class CartLine:
    product_id: int
    variant_id: int | None
    quantity: int
    unit_price: Decimal
    stock_hold: StockHold | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class CartSnapshot:
    """Zawartosc koszyka odczytana na poczatku proby."""

    cart_id: int
    version: int
    lines: tuple[CartLine, ...]

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0.00"))

    @property
    def stock_holds(self) -> list[StockHold]:
        return [line.stock_hold for line in self.lines if line.stock_hold is not None]


@dataclass(frozen=True)
class OrderDraft:
    user_id: int
    cart: CartSnapshot
    totals: OrderTotals
    payment_method: str
    shipping_method: str
    shipping_address_id: int
    billing_address_id: int
    idempotency_key: str
    coupon_id: int | None = None


@dataclass(frozen=True)
class StockIssue:
    reservation_id: int
    message: str


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    order_number: str
    idempotent: bool = False
    stock_issues: list[StockIssue] = field(default_factory=list)
