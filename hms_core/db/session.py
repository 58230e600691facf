# hms_core/db/session.py
from typing import Any, Dict

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from hms_core.core.config import settings


def _is_sqlite(db_uri: str) -> bool:
    return db_uri.startswith("sqlite")


def make_engine(db_uri: str, **overrides: Any) -> Engine:
    """
    Build an engine for the given URI.

    MySQL connections get driver level read/write timeouts and an InnoDB
    lock wait bound derived from STORE_TIMEOUT_SECONDS, so a stuck row
    lock surfaces as an OperationalError instead of blocking forever.
    """
    timeout = max(1, int(round(settings.STORE_TIMEOUT_SECONDS)))
    kwargs: Dict[str, Any] = {"future": True}

    if _is_sqlite(db_uri):
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": timeout,
        }
    else:
        kwargs.update(
            pool_pre_ping=True,
            pool_recycle=280,
            pool_size=10,
            max_overflow=20,
            pool_timeout=timeout,
            connect_args={
                "connect_timeout": timeout,
                "read_timeout": timeout,
                "write_timeout": timeout,
            },
        )
    kwargs.update(overrides)

    eng = create_engine(db_uri, **kwargs)

    if not _is_sqlite(db_uri):

        @event.listens_for(eng, "connect")
        def _set_lock_wait(dbapi_conn, _record):  # pragma: no cover - mysql only
            cur = dbapi_conn.cursor()
            cur.execute(f"SET SESSION innodb_lock_wait_timeout = {timeout}")
            cur.close()

    return eng


def make_session_factory(eng: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=eng,
        future=True,
    )


engine = make_engine(settings.SQLALCHEMY_DATABASE_URI)
SessionLocal = make_session_factory(engine)
