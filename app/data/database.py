# app/data/database.py
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.domain.errors import ConflictError, FatalError
from app.utils.settings import (
    DATABASE_URL,
    DB_ISOLATION_LEVEL,
    DB_LOCK_WAIT_MS,
    DB_TX_TIMEOUT_MS,
)
from app.utils.logging import get_logger

logger = get_logger(__name__)

#pgcode -> rodzaj bledu
_CONFLICT_CODES = {"40001", "40P01"}  # serialization_failure, deadlock_detected
_TIMEOUT_CODES = {"57014", "55P03"}  # query_canceled, lock_not_available


Base = declarative_base()


def build_engine(url: str = DATABASE_URL):
    if url.startswith("postgresql"):
        #maxWait / timeout - zablokowana proba nie trzyma lockow w nieskonczonosc
        return create_engine(
            url,
            isolation_level=DB_ISOLATION_LEVEL,
            pool_pre_ping=True,
            pool_timeout=max(DB_LOCK_WAIT_MS // 1000, 1),
            connect_args={
                "options": (
                    f"-c lock_timeout={DB_LOCK_WAIT_MS} "
                    f"-c statement_timeout={DB_TX_TIMEOUT_MS}"
                )
            },
        )
    return create_engine(url, pool_pre_ping=True)


engine = build_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def translate_db_error(exc: DBAPIError):
    """Mapuje blad sterownika na bledy checkout, None gdy nieznany."""
    pgcode = getattr(exc.orig, "pgcode", None)

    if pgcode in _CONFLICT_CODES:
        return ConflictError("Concurrent update detected, please retry")
    if pgcode in _TIMEOUT_CODES:
        return FatalError("Transaction timed out")
    if "database is locked" in str(exc.orig):
        return ConflictError("Concurrent update detected, please retry")
    if exc.connection_invalidated:
        return FatalError("Database is unreachable")
    return None


@contextmanager
def transaction(db: Session):
    """
    Jedna jednostka pracy: commit na koniec, rollback przy kazdym bledzie.
    Bledy sterownika sa tlumaczone na ConflictError / FatalError.
    """
    try:
        yield db
        db.commit()
    except DBAPIError as exc:
        db.rollback()
        error = translate_db_error(exc)
        if error is None:
            raise
        logger.warning(f"Transaction aborted: {error.message} ({exc.__class__.__name__})")
        raise error from exc
    except Exception:
        db.rollback()
        raise
