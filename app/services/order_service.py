# app/services/order_service.py
import secrets
import time
from datetime import timedelta

from sqlalchemy.orm import Session

from app.data.database import transaction
from app.data.models.order import OrderModel
from app.data.models.order_item import OrderItemModel
from app.data.models.payment import PaymentModel
from app.domain.errors import ConflictError, FatalError, NotFoundError
from app.domain.orders import OrderDraft
from app.domain.reservations import FinalizeContext
from app.repos.cart_repo import CartRepo
from app.repos.order_repo import OrderRepo
from app.services.idempotency_service import IdempotencyGuard
from app.services.saga import CheckoutSaga
from app.utils.retry import collision_retry
from app.utils.settings import CART_TTL_SECONDS, ORDER_NUMBER_ATTEMPTS
from app.utils.time import utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


class OrderNumberTaken(Exception):
    pass


class OrderService:
    """
    Serwis odpowiedzialny za domene zamowien.
    assemble() - jedna atomowa jednostka pracy skladajaca zamowienie.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)
        self.cart_repo = CartRepo(db)

    @collision_retry(OrderNumberTaken, ORDER_NUMBER_ATTEMPTS)
    def _next_order_number(self) -> str:
        #ORD + 9 ostatnich cyfr timestampu ms + 3 losowe cyfry
        timestamp = str(int(time.time() * 1000))
        number = f"ORD{timestamp[-9:]}{secrets.randbelow(1000):03d}"
        if self.repo.order_number_exists(number):
            logger.warning(f"Order number {number} already taken, retrying")
            raise OrderNumberTaken(number)
        return number

    def generate_order_number(self) -> str:
        try:
            return self._next_order_number()
        except OrderNumberTaken as e:
            raise FatalError("Could not generate a unique order number") from e

    def assemble(self, draft: OrderDraft, saga: CheckoutSaga, guard: IdempotencyGuard) -> OrderModel:
        """
        Use Case: zlozenie zamowienia.

        1. Unikalny numer zamowienia
        2. Zamowienie PENDING + pozycje skopiowane z koszyka (ceny zamrozone)
        3. Finalize wszystkich otwartych rezerwacji
        4. Wyczyszczenie koszyka (optimistic locking na wersji)
        5. Zapis platnosci
        6. Sukces zapisany pod kluczem idempotencji

        Wszystko albo nic - blad w dowolnym kroku cofa cala transakcje.
        """
        totals = draft.totals

        with transaction(self.db):
            order_number = self.generate_order_number()

            order = self.repo.create_order(
                OrderModel(
                    order_number=order_number,
                    cart_id=draft.cart.cart_id,
                    user_id=draft.user_id,
                    status="PENDING",
                    subtotal=totals.subtotal,
                    shipping_cost=totals.shipping,
                    tax_amount=totals.tax,
                    discount_amount=totals.discount,
                    gift_card_amount=totals.gift_card,
                    total=totals.total,
                    payment_method=draft.payment_method,
                    shipping_method=draft.shipping_method,
                    shipping_address_id=draft.shipping_address_id,
                    billing_address_id=draft.billing_address_id,
                    coupon_id=draft.coupon_id,
                    idempotency_key=draft.idempotency_key,
                )
            )

            for line in draft.cart.lines:
                self.db.add(
                    OrderItemModel(
                        order_id=order.id,
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        quantity=line.quantity,
                        price=line.unit_price,
                    )
                )

            self.repo.add_timeline_entry(order.id, "PENDING", "Order created, awaiting payment.")

            saga.finalize_all(
                FinalizeContext(
                    order_id=order.id,
                    subtotal=totals.subtotal,
                    gift_card_applied=totals.gift_card,
                )
            )

            # Optimistic locking - koszyk nie mogl sie zmienic od snapshotu
            rowcount = self.cart_repo.update_cart_version(
                cart_id=draft.cart.cart_id,
                old_version=draft.cart.version,
                new_data={
                    "version": draft.cart.version + 1,
                    "expires_at": utcnow() + timedelta(seconds=CART_TTL_SECONDS),
                },
            )
            if rowcount == 0:
                raise ConflictError("Cart was modified during checkout, please retry")

            self.cart_repo.clear_items(draft.cart.cart_id)

            self.repo.create_payment(
                PaymentModel(
                    order_id=order.id,
                    amount=totals.total,
                    method=draft.payment_method,
                    status="COMPLETED",
                    provider_transaction_id=f"TR{int(time.time() * 1000)}",
                )
            )

            guard.mark_succeeded(draft.idempotency_key, order.id, order_number)

        logger.info(f"Order {order.id} ({order_number}) created from cart {draft.cart.cart_id}, total {totals.total}")
        return order

    def add_timeline_entry(self, order_id: int, status: str, description: str):
        with transaction(self.db):
            self.repo.add_timeline_entry(order_id, status, description)

    def get_order(self, order_id: int, user_id: int):
        """
        Use Case: Pobranie zamowienia (Query).
        """
        order = self.repo.get_order(order_id)

        if not order:
            raise NotFoundError("Order not found")

        if order.user_id != user_id:
            raise PermissionError("Access to this order is denied")

        return {
            "id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "subtotal": order.subtotal,
            "shipping_cost": order.shipping_cost,
            "tax_amount": order.tax_amount,
            "discount_amount": order.discount_amount,
            "gift_card_amount": order.gift_card_amount,
            "total": order.total,
            "payment_method": order.payment_method,
            "shipping_method": order.shipping_method,
            "created_at": order.created_at,
            "items": [
                {
                    "product_id": i.product_id,
                    "variant_id": i.variant_id,
                    "quantity": i.quantity,
                    "price": i.price,
                }
                for i in order.items
            ],
            "payment": (
                {
                    "method": order.payment.method,
                    "status": order.payment.status,
                    "amount": order.payment.amount,
                    "provider_transaction_id": order.payment.provider_transaction_id,
                }
                if order.payment
                else None
            ),
            "timeline": self._timeline(order.id),
        }

    def get_timeline(self, order_id: int, user_id: int):
        order = self.repo.get_order(order_id)

        if not order:
            raise NotFoundError("Order not found")

        if order.user_id != user_id:
            raise PermissionError("Access to this order is denied")

        return self._timeline(order_id)

    def _timeline(self, order_id: int):
        return [
            {"status": t.status, "description": t.description, "date": t.date}
            for t in self.repo.get_timeline(order_id)
        ]
