# app/services/checkout_service.py
from sqlalchemy.orm import Session

from app.domain.errors import CheckoutError, EmptyCartError, FatalError, NegativeTotalError, NotFoundError
from app.domain.orders import CartSnapshot, CheckoutResult, OrderDraft, StockIssue
from app.domain.totals import ZERO, calculate_totals, money
from app.repos.address_repo import AddressRepo
from app.services.audit_service import AuditService
from app.services.cart_service import CartService
from app.services.coupon_service import CouponRequest, CouponReservationService
from app.services.gift_card_service import GiftCardRequest, GiftCardReservationService
from app.services.idempotency_service import IdempotencyGuard
from app.services.notification_service import NotificationService
from app.services.order_service import OrderService
from app.services.pricing import FlatRateShipping, default_tax_rate
from app.services.saga import CheckoutSaga
from app.services.stock_service import StockService
from app.utils.settings import DEFAULT_SHIPPING_METHOD
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CheckoutService:
    """
    Koszyk -> potwierdzone zamowienie.

    idempotency guard -> koszyk i adresy -> total (przed rabatem)
    -> rezerwacja kuponu -> rezerwacja karty -> total koncowy
    -> transakcja zamowienia -> konwersja rezerwacji stanow -> powiadomienie

    Kazdy blad przed commitem zamowienia uruchamia kompensacje sagi.
    """

    def __init__(
        self,
        db: Session,
        stock_service: StockService,
        shipping=None,
        tax_rate_for=default_tax_rate,
        notifications: NotificationService | None = None,
    ):
        self.db = db
        self.stock_service = stock_service
        self.carts = CartService(db, stock_service)
        self.addresses = AddressRepo(db)
        self.coupons = CouponReservationService(db)
        self.gift_cards = GiftCardReservationService(db)
        self.orders = OrderService(db)
        self.guard = IdempotencyGuard(db)
        self.audit = AuditService(db)
        self.shipping = shipping or FlatRateShipping()
        self.tax_rate_for = tax_rate_for
        self.notifications = notifications or NotificationService()

    def process(self, user_id: int, payload, idempotency_key: str, ip_address: str | None = None) -> CheckoutResult:
        replay = self.guard.begin(idempotency_key, user_id)
        if replay:
            self.audit.log(
                "INFO",
                "PAYMENT_DUPLICATE_REQUEST",
                f"Already processed payment request received again. "
                f"idempotencyKey:{idempotency_key}, orderId:{replay.order_id}",
                user_id,
                ip_address,
            )
            return CheckoutResult(order_id=replay.order_id, order_number=replay.order_number, idempotent=True)

        saga = CheckoutSaga(self.db, [self.coupons, self.gift_cards])

        try:
            saga.release_orphans(idempotency_key)
            self.audit.log(
                "INFO",
                "PAYMENT_PROCESSING_STARTED",
                f"Payment processing started. idempotencyKey:{idempotency_key}, userId:{user_id}, cartId:{payload.cart_id}",
                user_id,
                ip_address,
            )
            return self._run(user_id, payload, idempotency_key, ip_address, saga)

        except CheckoutError as e:
            logger.warning(f"Checkout {idempotency_key} failed: {e.code} {e.message}")
            self._abort(saga, idempotency_key, e, user_id, ip_address)
            raise

        except Exception as e:
            logger.exception(f"Checkout {idempotency_key} crashed")
            error = FatalError("Payment processing failed")
            self._abort(saga, idempotency_key, error, user_id, ip_address)
            raise error from e

    def _run(self, user_id: int, payload, key: str, ip: str | None, saga: CheckoutSaga) -> CheckoutResult:
        snapshot = self._load_cart(user_id, payload.cart_id, key, ip)
        shipping_address, billing_address = self._load_addresses(user_id, payload, key, ip)

        subtotal = money(snapshot.subtotal)
        shipping_method = payload.shipping_method or DEFAULT_SHIPPING_METHOD
        shipping = money(self.shipping.quote(shipping_method, subtotal, shipping_address))
        tax_rate = self.tax_rate_for(shipping_address)

        # total przed rabatem
        pre_discount = calculate_totals(subtotal, shipping, tax_rate)
        logger.info(f"Checkout {key}: subtotal {subtotal}, shipping {shipping}, pre-discount total {pre_discount.total}")

        discount = ZERO
        coupon_id = None
        if payload.coupon_code:
            reservation = saga.reserve(
                self.coupons,
                CouponRequest(code=payload.coupon_code, user_id=user_id, subtotal=subtotal, idempotency_key=key),
            )
            hold = reservation.hold
            discount = money(hold.discount)
            coupon_id = hold.coupon_id
            self.audit.log(
                "INFO",
                "PAYMENT_COUPON_RESERVED",
                f"Coupon reserved. idempotencyKey:{key}, userId:{user_id}, "
                f"couponCode:{payload.coupon_code}, discount:{discount}",
                user_id,
                ip,
            )

        gift_card_applied = ZERO
        if payload.gift_card_code:
            reservation = saga.reserve(
                self.gift_cards,
                GiftCardRequest(code=payload.gift_card_code, user_id=user_id, idempotency_key=key),
            )
            before_gift_card = calculate_totals(subtotal, shipping, tax_rate, discount)
            # tylko tyle ile faktycznie da sie zuzyc na to zamowienie
            gift_card_applied = min(money(reservation.hold.amount), before_gift_card.total)
            self.audit.log(
                "INFO",
                "PAYMENT_GIFT_CARD_RESERVED",
                f"Gift card reserved. idempotencyKey:{key}, userId:{user_id}, amount:{reservation.hold.amount}, "
                f"applied:{gift_card_applied}",
                user_id,
                ip,
            )
            if gift_card_applied <= ZERO:
                saga.release(reservation.id)

        try:
            totals = calculate_totals(subtotal, shipping, tax_rate, discount, gift_card_applied)
        except NegativeTotalError:
            self.audit.log(
                "WARNING",
                "PAYMENT_NEGATIVE_TOTAL",
                f"Negative total amount. idempotencyKey:{key}, userId:{user_id}",
                user_id,
                ip,
            )
            raise

        order = self.orders.assemble(
            OrderDraft(
                user_id=user_id,
                cart=snapshot,
                totals=totals,
                payment_method=payload.payment_method,
                shipping_method=shipping_method,
                shipping_address_id=shipping_address.id,
                billing_address_id=billing_address.id,
                idempotency_key=key,
                coupon_id=coupon_id,
            ),
            saga,
            self.guard,
        )
        saga.complete()

        # od tego miejsca zamowienie istnieje - nic ponizej nie moze go cofnac
        stock_issues = self._convert_stock(order.id, snapshot, user_id, ip)
        self._notify(user_id, order.id, order.order_number)

        self.audit.log(
            "INFO",
            "PAYMENT_PROCESSING",
            f"Payment processed successfully. idempotencyKey:{key}, orderId:{order.id},orderNumber:{order.order_number}",
            user_id,
            ip,
        )
        return CheckoutResult(
            order_id=order.id,
            order_number=order.order_number,
            idempotent=False,
            stock_issues=stock_issues,
        )

    def _load_cart(self, user_id: int, cart_id: int, key: str, ip: str | None) -> CartSnapshot:
        try:
            return self.carts.snapshot(cart_id, user_id)
        except NotFoundError:
            self.audit.log(
                "WARNING",
                "PAYMENT_CART_NOT_FOUND",
                f"Cart not found. idempotencyKey:{key}, userId:{user_id}, cartId:{cart_id}",
                user_id,
                ip,
            )
            raise
        except EmptyCartError:
            self.audit.log(
                "WARNING",
                "PAYMENT_EMPTY_CART",
                f"Checkout attempted with an empty cart. idempotencyKey:{key}, userId:{user_id}, cartId:{cart_id}",
                user_id,
                ip,
            )
            raise

    def _load_addresses(self, user_id: int, payload, key: str, ip: str | None):
        shipping_address = self.addresses.get_for_user(payload.shipping_address_id, user_id)
        billing_address = self.addresses.get_for_user(payload.billing_address_id, user_id)

        if not shipping_address or not billing_address:
            self.audit.log(
                "WARNING",
                "PAYMENT_ADDRESS_NOT_FOUND",
                f"Address not found. idempotencyKey:{key}, userId:{user_id}, "
                f"shippingAddressId:{payload.shipping_address_id}, billingAddressId:{payload.billing_address_id}",
                user_id,
                ip,
            )
            raise NotFoundError("Address not found")

        return shipping_address, billing_address

    def _convert_stock(self, order_id: int, snapshot: CartSnapshot, user_id: int, ip: str | None) -> list[StockIssue]:
        holds = snapshot.stock_holds
        if not holds:
            return []

        try:
            result = self.stock_service.convert_reservations_to_order(
                [h.stock_reservation_id for h in holds], order_id
            )
        except Exception as e:
            logger.exception(f"Order {order_id}: stock conversion failed")
            return [StockIssue(reservation_id=h.stock_reservation_id, message=str(e)) for h in holds]

        if result.all_converted:
            return []

        issues = [StockIssue(reservation_id=r.reservation_id, message=r.message or "") for r in result.failed]
        description = "; ".join(f"reservation {i.reservation_id}: {i.message}" for i in issues)
        # platnosc juz autoryzowana za caly koszyk - zamowienie idzie dalej
        logger.warning(f"Order {order_id}: partial stock conversion - {description}")
        self.audit.log("WARNING", "STOCK_CONVERSION_PARTIAL", f"Order {order_id}: {description}", user_id, ip)
        try:
            self.orders.add_timeline_entry(
                order_id, "PENDING", f"Some items could not be allocated from stock: {description}"
            )
        except Exception:
            logger.exception(f"Order {order_id}: could not add stock issues to the timeline")
        return issues

    def _notify(self, user_id: int, order_id: int, order_number: str):
        try:
            self.notifications.send_order_notification(user_id, order_id, order_number)
        except Exception as e:
            logger.warning(f"Order {order_id}: notification dispatch failed: {e}")

    def _abort(self, saga: CheckoutSaga, key: str, error: CheckoutError, user_id: int, ip: str | None):
        self.db.rollback()
        saga.compensate()
        self.guard.mark_failed(key, error)
        self.audit.log(
            "ERROR" if error.status_code >= 500 else "WARNING",
            "PAYMENT_PROCESSING",
            f"Payment processing failed: {error.message}. idempotencyKey:{key}",
            user_id,
            ip,
        )
