from datetime import timedelta
from decimal import Decimal
from typing import Dict, Any
import uuid

from sqlalchemy.orm import Session

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.domain.errors import ConflictError, EmptyCartError, InsufficientStockError, NotFoundError, ValidationError
from app.domain.orders import CartLine, CartSnapshot
from app.domain.reservations import StockHold
from app.repos.cart_repo import CartRepo
from app.repos.stock_repo import StockRepo
from app.services.stock_service import StockService
from app.utils.settings import CART_TTL_SECONDS
from app.utils.time import utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Prosta implementacja cqrs dla domeny cart
    commands (create, add, remove) modyfikuja stan
    query (get, snapshot) tylko odczyt
    """

    def __init__(self, db: Session, stock_service: StockService):
        self.repo = CartRepo(db)
        self.stock_repo = StockRepo(db)
        self.stock_service = stock_service

    #query - odczyt
    def get_cart(self, cart_id: int, user_id: int) -> Dict[str, Any] | None:
        cart = self.repo.get_cart(cart_id)

        if not cart:
            return None

        if cart.user_id != user_id:
            raise PermissionError("Access to this cart is denied")

        return self._to_dict(cart)

    def snapshot(self, cart_id: int, user_id: int) -> CartSnapshot:
        """Zamrozona zawartosc koszyka na potrzeby jednej proby checkout."""
        cart = self.repo.get_cart_for_user(cart_id, user_id)
        if not cart:
            raise NotFoundError("Cart not found")

        items = self.repo.get_cart_items(cart_id)
        if not items:
            raise EmptyCartError("Cart is empty")

        return CartSnapshot(
            cart_id=cart.id,
            version=cart.version,
            lines=tuple(
                CartLine(
                    product_id=i.product_id,
                    variant_id=i.variant_id,
                    quantity=i.quantity,
                    unit_price=Decimal(str(i.price)),
                    stock_hold=(
                        StockHold(
                            stock_reservation_id=i.stock_reservation_id,
                            variant_id=i.variant_id,
                            quantity=i.quantity,
                        )
                        if i.stock_reservation_id
                        else None
                    ),
                )
                for i in items
            ),
        )

    #commands
    def create_cart(self, user_id: int, session_id: str | None = None) -> Dict[str, Any]:
        #check czy user ma aktywny koszyk
        existing = self.repo.get_active_cart_by_user(user_id)

        if existing:
            logger.info(f"User {user_id} already has an active cart {existing.id}")
            return self._to_dict(existing)

        #TTL i version 1
        new_cart = CartModel(
            user_id=user_id,
            session_id=session_id or str(uuid.uuid4()),
            status="ACTIVE",
            version=1,
            expires_at=utcnow() + timedelta(seconds=CART_TTL_SECONDS),
        )

        created = self.repo.create_cart(new_cart)

        logger.info(f"Created cart {created.id} for user {user_id}")

        return self._to_dict(created)

    def add_item(
        self,
        user_id: int,
        cart_id: int,
        variant_id: int,
        quantity: int,
    ) -> Dict[str, Any]:

        # Walidacje
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        cart = self._load_active(cart_id, user_id)

        variant = self.stock_repo.get_variant(variant_id)
        if not variant:
            raise NotFoundError(f"Variant {variant_id} not found")

        # Rezerwacja stanu (blokada wariantu w Redis + rezerwacja w bazie)
        result = self.stock_service.reserve(
            variant_id=variant_id,
            quantity=quantity,
            session_id=cart.session_id,
            user_id=user_id,
        )
        if not result.success:
            raise InsufficientStockError(result.message or "Insufficient stock")

        try:
            logger.info(f"Adding variant {variant_id} x{quantity} to cart {cart_id}")
            self.repo.add_cart_item(
                CartItemModel(
                    cart_id=cart_id,
                    product_id=variant.product_id,
                    variant_id=variant_id,
                    quantity=quantity,
                    price=variant.price,  # snapshot ceny
                    stock_reservation_id=result.reservation_id,
                )
            )

            # Optimistic locking, kazda akcja TTL + 15 min
            rowcount = self.repo.update_cart_version(
                cart_id=cart.id,
                old_version=cart.version,
                new_data={
                    "version": cart.version + 1,
                    "expires_at": utcnow() + timedelta(seconds=CART_TTL_SECONDS),
                },
            )

            # np w bazie update set version 2 where id 1 and version 1
            if rowcount == 0:
                raise ConflictError("Cart was modified by another operation, please retry")

            self.repo.commit()

        except Exception as e:
            # W przypadku bledu zwolnij rezerwacje
            logger.error(f"Failed to add variant {variant_id} to cart {cart_id}: {e}")
            self.repo.rollback()
            self.stock_service.cancel_reservation(result.reservation_id)
            raise

        logger.info(f"Variant {variant_id} added to cart {cart_id}, new version: {cart.version + 1}")

        return self.get_cart(cart_id, user_id)

    def remove_item(
        self,
        user_id: int,
        cart_id: int,
        item_id: int,
    ) -> Dict[str, Any]:

        cart = self._load_active(cart_id, user_id)

        item = self.repo.get_cart_item(cart_id, item_id)
        if not item:
            raise NotFoundError("Cart item not found")

        reservation_id = item.stock_reservation_id
        logger.info(f"Removing item {item_id} from cart {cart_id}")

        self.repo.delete_cart_item(cart_id, item_id)

        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={"version": cart.version + 1},
        )

        if rowcount == 0: #jesli tj 0 rows affected
            self.repo.rollback()
            raise ConflictError("Cart was modified by another operation, please retry")

        self.repo.commit()

        #zwolnij rezerwacje stanu
        if reservation_id:
            self.stock_service.cancel_reservation(reservation_id)

        return self.get_cart(cart_id, user_id)

    def _load_active(self, cart_id: int, user_id: int) -> CartModel:
        cart = self.repo.get_cart(cart_id)

        if not cart:
            raise NotFoundError("Cart not found")

        if cart.user_id != user_id:
            raise PermissionError("Access to this cart is denied")

        if cart.status != "ACTIVE":
            raise ValidationError("Cart cannot be modified")

        return cart

    def _to_dict(self, cart: CartModel) -> Dict[str, Any]:
        #pobierz produkty z repo i oblicz total
        items = self.repo.get_cart_items(cart.id)
        total = sum((i.price * i.quantity for i in items), Decimal("0.00"))

        #dict przeksztalcany w jsona
        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "status": cart.status,
            "version": cart.version,
            "items": [
                {
                    "item_id": i.id,
                    "product_id": i.product_id,
                    "variant_id": i.variant_id,
                    "quantity": i.quantity,
                    "price": i.price,
                    "stock_reservation_id": i.stock_reservation_id,
                }
                for i in items
            ],
            "total": total,
            "expires_at": cart.expires_at,
        }
