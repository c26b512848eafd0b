from contextlib import contextmanager
from functools import lru_cache
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

from core.config import get_settings
from core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

_DEPTH_KEY = "forum_transaction_depth"
_CALLBACKS_KEY = "forum_after_commit"


@lru_cache()
def get_engine():
    settings = get_settings()
    connect_args = {"check_same_thread": False} if settings.DB_DRIVER == "sqlite" else {}
    return create_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO, connect_args=connect_args)


def get_session():
    with Session(get_engine()) as session:
        yield session


def create_db_and_tables(engine=None):
    # Register every table on the metadata before creating it
    import models  # noqa: F401

    SQLModel.metadata.create_all(engine or get_engine())


@contextmanager
def transaction(session: Session):
    """Run a unit of work against ``session``.

    The outermost block commits on success and rolls back on any error;
    nested blocks only flush so that the outermost caller decides. Storage
    failures are re-raised as ``PersistenceError`` with the original error
    as the cause. Callbacks registered with ``after_commit`` run once the
    outermost block has committed and are dropped on rollback.
    """
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
        else:
            session.flush()
    except SQLAlchemyError as e:
        if depth == 0:
            session.rollback()
            session.info.pop(_CALLBACKS_KEY, None)
        logger.error(f"Storage error: {str(e)}")
        raise PersistenceError(str(e)) from e
    except Exception:
        if depth == 0:
            session.rollback()
            session.info.pop(_CALLBACKS_KEY, None)
        raise
    finally:
        session.info[_DEPTH_KEY] = depth

    if depth == 0:
        for callback in session.info.pop(_CALLBACKS_KEY, []):
            callback()


def after_commit(session: Session, callback):
    """Run ``callback`` after the enclosing ``transaction`` block commits"""
    if session.info.get(_DEPTH_KEY, 0) == 0:
        callback()
        return
    session.info.setdefault(_CALLBACKS_KEY, []).append(callback)
