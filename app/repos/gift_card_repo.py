from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, case
from sqlalchemy.orm import Session

from app.data.models.gift_card import GiftCardModel, GiftCardTransactionModel


class GiftCardRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_active_by_code(self, code: str) -> GiftCardModel | None:
        return self.db.execute(
            select(GiftCardModel).where(GiftCardModel.code == code, GiftCardModel.status == "ACTIVE")
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get(self, gift_card_id: int) -> GiftCardModel | None:
        return self.db.get(GiftCardModel, gift_card_id, populate_existing=True)

    def debit(self, gift_card_id: int, required: Decimal, amount: Decimal, now: datetime) -> int:
        """
        UPDATE ... SET balance = balance - amount WHERE balance >= required.
        Status przechodzi na USED w tym samym zapytaniu, gdy saldo spada do zera.
        """
        res = self.db.execute(
            update(GiftCardModel)
            .where(
                GiftCardModel.id == gift_card_id,
                GiftCardModel.status == "ACTIVE",
                GiftCardModel.current_balance > 0,
                GiftCardModel.current_balance >= required,
            )
            .values(
                current_balance=GiftCardModel.current_balance - amount,
                last_used=now,
                status=case(
                    (GiftCardModel.current_balance - amount <= 0, "USED"),
                    else_=GiftCardModel.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def add_transaction(
        self, gift_card_id: int, amount: Decimal, order_id: int, description: str
    ) -> GiftCardTransactionModel:
        tx = GiftCardTransactionModel(
            gift_card_id=gift_card_id,
            amount=amount,
            order_id=order_id,
            description=description,
        )
        self.db.add(tx)
        self.db.flush()
        return tx

    def get_transactions(self, gift_card_id: int) -> list[GiftCardTransactionModel]:
        return list(
            self.db.execute(
                select(GiftCardTransactionModel)
                .where(GiftCardTransactionModel.gift_card_id == gift_card_id)
                .order_by(GiftCardTransactionModel.id)
            ).scalars()
        )
