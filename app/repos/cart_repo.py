# app/repos/cart_repo.py
from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.get(CartModel, cart_id, populate_existing=True)

    def get_cart_for_user(self, cart_id: int, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.id == cart_id, CartModel.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_active_cart_by_user(self, user_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.user_id == user_id, CartModel.status == "ACTIVE")
        ).scalars().first()

    def get_cart_items(self, cart_id: int) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel).where(CartItemModel.cart_id == cart_id).order_by(CartItemModel.id)
            ).scalars()
        )

    def get_cart_item(self, cart_id: int, item_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(CartItemModel.cart_id == cart_id, CartItemModel.id == item_id)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.commit()
        self.db.refresh(cart)
        return cart

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def delete_cart_item(self, cart_id: int, item_id: int) -> int:
        res = self.db.execute(
            delete(CartItemModel).where(CartItemModel.cart_id == cart_id, CartItemModel.id == item_id)
        )
        return res.rowcount

    def clear_items(self, cart_id: int) -> int:
        res = self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))
        return res.rowcount

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        #update ... set version = old+1 where id = ? and version = old
        res = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
