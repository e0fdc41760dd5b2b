from sqlalchemy import select
from sqlalchemy.orm import Session

from app.data.models.address import AddressModel


class AddressRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_for_user(self, address_id: int, user_id: int) -> AddressModel | None:
        return self.db.execute(
            select(AddressModel).where(AddressModel.id == address_id, AddressModel.user_id == user_id)
        ).scalar_one_or_none()
