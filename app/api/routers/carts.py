#app/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_lock_service
from app.data.database import get_db
from app.domain.errors import CheckoutError
from app.domain.schemas import (
    CreateCartIn,
    ItemIn,
    CartOut,
)
from app.services.cart_service import CartService
from app.services.lock_service import LockService
from app.services.stock_service import StockService

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(db: Session, lock_service: LockService):
    return CartService(
        db=db,
        stock_service=StockService(db, lock_service),
    )


@router.post("/", response_model=CartOut)
def create_cart(
    payload: CreateCartIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    return svc.create_cart(user_id, payload.session_id)


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(
    cart_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        cart = svc.get_cart(cart_id, user_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")
    return cart


@router.post("/{cart_id}/items", response_model=CartOut)
def add_item(
    cart_id: int,
    payload: ItemIn,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        return svc.add_item(
            user_id=user_id,
            cart_id=cart_id,
            variant_id=payload.variant_id,
            quantity=payload.quantity,
        )
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.delete("/{cart_id}/items/{item_id}", response_model=CartOut)
def remove_item(
    cart_id: int,
    item_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
):
    svc = get_service(db, lock_service)
    try:
        return svc.remove_item(user_id, cart_id, item_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
