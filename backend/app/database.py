from contextlib import contextmanager
import logging
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings
from app.core.errors import InternalError, RoomServiceError

settings = get_settings()

logger = logging.getLogger(__name__)

_engine_options: dict[str, object] = {"echo": settings.debug, "future": True, "pool_pre_ping": True}
if not settings.database_url.startswith("sqlite"):
    # pool_size: number of connections to maintain persistently
    # max_overflow: additional connections that can be created on demand
    _engine_options.update(pool_size=10, max_overflow=20)

engine = create_engine(settings.database_url, **_engine_options)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@event.listens_for(engine, "connect")
def _apply_lock_timeout(dbapi_connection, connection_record) -> None:  # pragma: no cover - mysql only
    if engine.dialect.name != "mysql":
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute(
            "SET SESSION innodb_lock_wait_timeout = %s",
            (settings.database_lock_timeout_seconds,),
        )
    finally:
        cursor.close()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Iterator[Session]:
    """Context manager for short-lived database sessions.

    Use this in WebSocket handlers instead of Depends(get_db) to avoid
    holding database connections for the entire WebSocket connection lifetime.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run a unit of work as a single transaction.

    Business rule violations roll back and propagate unchanged. Store failures
    (deadlocks, lock wait timeouts, constraint violations) roll back and are
    reported as a retryable :class:`InternalError`.
    """

    try:
        yield db
        db.commit()
    except RoomServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Room transaction failed and was rolled back")
        raise InternalError("The operation could not be completed, please retry", retryable=True) from exc
