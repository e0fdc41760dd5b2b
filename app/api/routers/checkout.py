# app/api/routers/checkout.py
import uuid

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_lock_service, get_shipping_calculator
from app.data.database import get_db
from app.domain.errors import CheckoutError
from app.domain.schemas import CheckoutIn, CheckoutOut
from app.services.checkout_service import CheckoutService
from app.services.lock_service import LockService
from app.services.stock_service import StockService
from app.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


def get_service(db: Session, lock_service: LockService, shipping):
    return CheckoutService(
        db=db,
        stock_service=StockService(db, lock_service),
        shipping=shipping,
    )


@router.post("", response_model=CheckoutOut)
def checkout(
    payload: CheckoutIn,
    request: Request,
    user_id: int = Depends(get_current_user_id),
    x_idempotency_key: str | None = Header(default=None, max_length=128),
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
    shipping=Depends(get_shipping_calculator),
):
    """
    Koszyk -> zamowienie.
    Ponowienie z tym samym X-Idempotency-Key zwraca to samo zamowienie (idempotent=true).
    """
    #brak klucza - kazde wywolanie to osobna proba
    key = x_idempotency_key or str(uuid.uuid4())
    ip_address = request.client.host if request.client else None

    svc = get_service(db, lock_service, shipping)
    try:
        result = svc.process(user_id, payload, key, ip_address)
    except CheckoutError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())

    return {
        "success": True,
        "order_id": result.order_id,
        "order_number": result.order_number,
        "idempotent": result.idempotent,
        "stock_issues": [
            {"reservation_id": i.reservation_id, "message": i.message} for i in result.stock_issues
        ],
    }
