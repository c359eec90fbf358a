from __future__ import annotations

from typing import Any, Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from coldstore.core.config import Settings


def _install_sqlite_locking(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write; take the write lock up front
    # so a read-then-write unit of work cannot interleave with another writer.
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(settings: Settings) -> Engine:
    url = make_url(settings.database_url)
    backend = url.get_backend_name()

    kwargs: dict[str, Any] = {"echo": settings.sql_echo, "future": True}
    if backend.startswith("postgresql"):
        kwargs["pool_pre_ping"] = True
        kwargs["connect_args"] = {"options": f"-c lock_timeout={int(settings.lock_timeout_ms)}"}
    elif backend.startswith("sqlite"):
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": max(settings.lock_timeout_ms, 1000) / 1000.0,
        }

    engine = create_engine(settings.database_url, **kwargs)
    if backend.startswith("sqlite"):
        _install_sqlite_locking(engine)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
