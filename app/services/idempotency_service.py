# app/services/idempotency_service.py
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.data.database import transaction
from app.data.models.idempotency import IdempotencyKeyModel
from app.domain.errors import CheckoutError, ConflictError, ValidationError
from app.repos.idempotency_repo import IdempotencyRepo
from app.utils.settings import IDEMPOTENCY_LOCK_SECONDS
from app.utils.time import as_utc, utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)

IN_PROGRESS = "IN_PROGRESS"
SUCCEEDED = "SUCCEEDED"
FAILED = "FAILED"


@dataclass(frozen=True)
class Replay:
    order_id: int
    order_number: str


class IdempotencyGuard:
    """
    Klucz idempotencji -> wynik proby checkout.

    begin()          - replay poprzedniego sukcesu albo atomowe przejecie klucza
    mark_succeeded() - w tej samej transakcji co zamowienie
    mark_failed()    - porazka nie blokuje kolejnej proby z tym samym kluczem
    """

    def __init__(self, db: Session, lock_seconds: int = IDEMPOTENCY_LOCK_SECONDS):
        self.db = db
        self.repo = IdempotencyRepo(db)
        self.lock_seconds = lock_seconds

    def begin(self, key: str, user_id: int) -> Replay | None:
        with transaction(self.db):
            now = utcnow()
            entry = self.repo.get(key)

            if entry is None:
                try:
                    self.repo.insert(
                        IdempotencyKeyModel(
                            key=key,
                            user_id=user_id,
                            status=IN_PROGRESS,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                except IntegrityError as e:
                    #ktos inny wstawil ten klucz przed nami
                    raise ConflictError("A checkout with this idempotency key is already in progress") from e
                logger.info(f"Idempotency key {key} claimed by user {user_id}")
                return None

            if entry.user_id != user_id:
                raise ValidationError(
                    "Idempotency key was issued for a different user",
                    code="IDEMPOTENCY_KEY_MISMATCH",
                )

            if entry.status == SUCCEEDED:
                if entry.order_id and entry.order_number:
                    logger.info(f"Idempotency key {key} replayed: order {entry.order_id}")
                    return Replay(order_id=entry.order_id, order_number=entry.order_number)
                # niekompletny wpis - fail closed, traktujemy jak brak dopasowania
                logger.warning(f"Idempotency key {key} has an incomplete success record, ignoring it")

            elif entry.status == IN_PROGRESS:
                if as_utc(entry.updated_at) > now - timedelta(seconds=self.lock_seconds):
                    raise ConflictError("A checkout with this idempotency key is already in progress")
                logger.warning(f"Idempotency key {key} was abandoned, reclaiming")

            if self.repo.reclaim(key, user_id, entry.status, entry.updated_at, now) == 0:
                raise ConflictError("A checkout with this idempotency key is already in progress")

        logger.info(f"Idempotency key {key} reclaimed by user {user_id}")
        return None

    def mark_succeeded(self, key: str, order_id: int, order_number: str):
        #bez commita - czesc transakcji zamowienia
        if self.repo.mark_succeeded(key, order_id, order_number, utcnow()) == 0:
            raise ConflictError("Idempotency key was taken over by another attempt")

    def mark_failed(self, key: str, error: CheckoutError):
        try:
            with transaction(self.db):
                self.repo.mark_failed(key, error.code, error.message, utcnow())
        except (SQLAlchemyError, CheckoutError) as e:
            logger.error(f"Could not record failure for idempotency key {key}: {e}")

    def expire_stale(self) -> int:
        with transaction(self.db):
            now = utcnow()
            count = self.repo.expire_stale(now - timedelta(seconds=self.lock_seconds), now)
        if count:
            logger.info(f"Marked {count} abandoned idempotency keys as failed")
        return count
