# app/api/deps.py
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.repos.user_repo import UserRepo
from app.services.lock_service import LockService
from app.services import pricing


def get_current_user_id(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> int:
    #uwierzytelnienie poza zakresem serwisu - gateway przekazuje id w naglowku
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")

    if not x_user_id.isdigit() or not UserRepo(db).get_user(int(x_user_id)):
        raise HTTPException(status_code=401, detail="Unknown user")

    return int(x_user_id)


def get_lock_service() -> LockService:
    return LockService()


def get_shipping_calculator():
    return pricing.get_shipping_calculator()
