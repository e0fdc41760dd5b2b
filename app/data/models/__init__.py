#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from app.data.models.user import UserModel
from app.data.models.address import AddressModel
from app.data.models.product_variant import ProductVariantModel
from app.data.models.stock_reservation import StockReservationModel
from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.data.models.coupon import CouponModel, UserCouponModel
from app.data.models.gift_card import GiftCardModel, GiftCardTransactionModel
from app.data.models.order import OrderModel
from app.data.models.order_item import OrderItemModel
from app.data.models.order_timeline import OrderTimelineModel
from app.data.models.payment import PaymentModel
from app.data.models.reservation import ReservationModel
from app.data.models.idempotency import IdempotencyKeyModel
from app.data.models.notification import NotificationModel
from app.data.models.system_log import SystemLogModel

__all__ = [
    "UserModel",
    "AddressModel",
    "ProductVariantModel",
    "StockReservationModel",
    "CartModel",
    "CartItemModel",
    "CouponModel",
    "UserCouponModel",
    "GiftCardModel",
    "GiftCardTransactionModel",
    "OrderModel",
    "OrderItemModel",
    "OrderTimelineModel",
    "PaymentModel",
    "ReservationModel",
    "IdempotencyKeyModel",
    "NotificationModel",
    "SystemLogModel",
]
