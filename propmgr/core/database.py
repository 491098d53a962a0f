"""
Engine, session factory and the transaction helpers every mutating service uses.

A service wraps its work in ``with transaction(db):`` (or decorates itself with
``@transactional``). The outermost block commits or rolls back; inner blocks join
it. Side-effect hooks registered with ``on_commit`` / ``on_rollback`` run once
the outermost block has finished.
"""
import logging
from contextlib import contextmanager
from functools import wraps
from typing import Callable

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from propmgr.core.config import settings
from propmgr.core.errors import ConflictError

logger = logging.getLogger(__name__)

Base = declarative_base()

_DEPTH_KEY = "tx_depth"
_ON_COMMIT_KEY = "tx_on_commit"
_ON_ROLLBACK_KEY = "tx_on_rollback"


def create_db_engine(url: str, **kwargs):
    """
    Build an engine for ``url``.

    pysqlite handles BEGIN/SAVEPOINT itself and gets it wrong; for SQLite we turn
    that off and emit BEGIN ourselves so ``Session.begin_nested()`` works.
    """
    connect_args = kwargs.pop("connect_args", {})
    if url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    engine = create_engine(url, connect_args=connect_args, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _sqlite_on_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _sqlite_on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = create_db_engine(settings.DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def on_commit(db: Session, fn: Callable[[], None]) -> None:
    """Run ``fn`` after the outermost transaction commits."""
    db.info.setdefault(_ON_COMMIT_KEY, []).append(fn)


def on_rollback(db: Session, fn: Callable[[], None]) -> None:
    """Run ``fn`` after the outermost transaction rolls back (compensation)."""
    db.info.setdefault(_ON_ROLLBACK_KEY, []).append(fn)


def _run_hooks(db: Session, committed: bool) -> None:
    hooks = db.info.pop(_ON_COMMIT_KEY if committed else _ON_ROLLBACK_KEY, [])
    db.info.pop(_ON_ROLLBACK_KEY if committed else _ON_COMMIT_KEY, None)
    for fn in hooks:
        try:
            fn()
        except Exception:
            logger.exception("Transaction %s hook failed", "commit" if committed else "rollback")


@contextmanager
def transaction(db: Session):
    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1

    if depth:
        # joined an ambient transaction; the outermost block decides
        try:
            yield db
        finally:
            db.info[_DEPTH_KEY] = depth
        return

    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        db.info[_DEPTH_KEY] = 0
        _run_hooks(db, committed=False)
        raise ConflictError("Unique constraint violated", details=str(exc.orig)) from exc
    except BaseException:
        db.rollback()
        db.info[_DEPTH_KEY] = 0
        _run_hooks(db, committed=False)
        raise
    db.info[_DEPTH_KEY] = 0
    _run_hooks(db, committed=True)


def transactional(fn):
    """Decorator form of ``transaction`` for service functions taking ``db`` first."""
    @wraps(fn)
    def wrapper(db: Session, *args, **kwargs):
        with transaction(db):
            return fn(db, *args, **kwargs)
    return wrapper
