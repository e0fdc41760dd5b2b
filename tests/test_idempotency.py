from datetime import timedelta

import pytest

from app.data.models import IdempotencyKeyModel
from app.domain.errors import ConflictError, FatalError, ValidationError
from app.services.idempotency_service import IdempotencyGuard
from app.utils.time import utcnow


def _entry(db_session, key, user_id, status, age_seconds=0, **kwargs):
    stamp = utcnow() - timedelta(seconds=age_seconds)
    db_session.add(
        IdempotencyKeyModel(key=key, user_id=user_id, status=status, created_at=stamp, updated_at=stamp, **kwargs)
    )
    db_session.commit()


def test_new_key_is_claimed(db_session, user):
    guard = IdempotencyGuard(db_session)

    assert guard.begin("key-1", user.id) is None

    db_session.expire_all()
    assert db_session.get(IdempotencyKeyModel, "key-1").status == "IN_PROGRESS"


def test_fresh_in_progress_key_conflicts(db_session, user):
    guard = IdempotencyGuard(db_session)
    guard.begin("key-1", user.id)

    with pytest.raises(ConflictError) as exc:
        guard.begin("key-1", user.id)

    assert exc.value.status_code == 409
    assert exc.value.retryable is True


def test_abandoned_in_progress_key_is_reclaimed(db_session, user):
    _entry(db_session, "key-1", user.id, "IN_PROGRESS", age_seconds=600)

    assert IdempotencyGuard(db_session, lock_seconds=120).begin("key-1", user.id) is None


def test_success_is_replayed(db_session, user):
    _entry(db_session, "key-1", user.id, "SUCCEEDED", order_id=7, order_number="ORD123456789001")

    replay = IdempotencyGuard(db_session).begin("key-1", user.id)

    assert replay.order_id == 7
    assert replay.order_number == "ORD123456789001"


def test_incomplete_success_record_is_not_replayed(db_session, user):
    _entry(db_session, "key-1", user.id, "SUCCEEDED", order_id=None, order_number=None)

    assert IdempotencyGuard(db_session).begin("key-1", user.id) is None


def test_failed_attempt_does_not_block_retry(db_session, user):
    guard = IdempotencyGuard(db_session)
    guard.begin("key-1", user.id)
    guard.mark_failed("key-1", FatalError("boom"))

    db_session.expire_all()
    entry = db_session.get(IdempotencyKeyModel, "key-1")
    assert entry.status == "FAILED"
    assert entry.error_code == "INTERNAL_ERROR"

    assert guard.begin("key-1", user.id) is None


def test_key_of_another_user_is_rejected(db_session, user, other_user):
    _entry(db_session, "key-1", other_user.id, "SUCCEEDED", order_id=7, order_number="ORD123456789001")

    with pytest.raises(ValidationError) as exc:
        IdempotencyGuard(db_session).begin("key-1", user.id)

    assert exc.value.code == "IDEMPOTENCY_KEY_MISMATCH"


def test_expire_stale_fails_abandoned_keys_only(db_session, user):
    _entry(db_session, "old", user.id, "IN_PROGRESS", age_seconds=600)
    _entry(db_session, "new", user.id, "IN_PROGRESS")

    assert IdempotencyGuard(db_session, lock_seconds=120).expire_stale() == 1

    db_session.expire_all()
    assert db_session.get(IdempotencyKeyModel, "old").status == "FAILED"
    assert db_session.get(IdempotencyKeyModel, "new").status == "IN_PROGRESS"
