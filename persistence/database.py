"""
SQLite storage for decision records.

One module-level engine per process. Tests point it at an in-memory
database with ``init_db('sqlite://')``; the runner uses the file under
``config.DATA_DIR``.
"""

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_path() -> str:
    """decisions.db under the configured data directory"""
    from config import config  # deferred so persistence imports without the runner config

    config.ensure_dirs()
    return os.path.join(config.DATA_DIR, 'decisions.db')


def _is_memory_url(database_url: str) -> bool:
    return database_url in ('sqlite://', 'sqlite:///:memory:')


def _make_engine(database_url: str) -> Engine:
    kwargs = {'echo': False}
    if database_url.startswith('sqlite'):
        # The pipeline may record from the intent-source worker thread
        kwargs['connect_args'] = {'check_same_thread': False}
    if _is_memory_url(database_url):
        # One shared connection, otherwise each session sees an empty database
        kwargs['poolclass'] = StaticPool
    return create_engine(database_url, **kwargs)


def init_db(database_url: Optional[str] = None) -> None:
    """
    Create the engine and the decision tables.

    Args:
        database_url: SQLAlchemy URL; defaults to the SQLite file under DATA_DIR
    """
    global _engine, _SessionFactory

    if _engine is not None:
        close_db()
    database_url = database_url or f'sqlite:///{get_database_path()}'
    _engine = _make_engine(database_url)
    Base.metadata.create_all(_engine)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info(f"💾 Decision database ready at {database_url}")


def get_session() -> Session:
    """New session; initializes the default database on first use."""
    if _SessionFactory is None:
        init_db()
    return _SessionFactory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Transactional scope: commit on success, roll back and re-raise on error.

        with session_scope() as session:
            session.add(record)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Decision database error, rolled back: {e}")
        raise
    finally:
        session.close()


def close_db():
    """Dispose the engine (tests call this between cases)."""
    global _engine, _SessionFactory

    if _engine is None:
        return
    _engine.dispose()
    _engine = None
    _SessionFactory = None
    logger.debug("Decision database closed")
