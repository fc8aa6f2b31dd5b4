"""SQLAlchemy engine factory, session class, and Connection bridge.

This module provides:

* ``create_retryline_engine``   -- Create a SA engine from a URL.
* ``RetrylineSession``          -- A pre-configured ``Session`` subclass.
* ``SAConnectionBridge``        -- Wraps a SA ``Session`` to satisfy the
  ``retryline.core.protocols.Connection`` protocol, so the ledger and the
  SQL policy source run unchanged inside an ORM unit of work.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def create_retryline_engine(
    url: str = "sqlite:///retryline.db",
    *,
    echo: bool = False,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    SQLite engines get ``check_same_thread=False`` (the scheduler dispatches
    from a worker thread) and WAL journaling.
    """
    if not url.startswith("sqlite"):
        return _sa_create_engine(url, echo=echo, **kwargs)

    kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = _sa_create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


class RetrylineSession(Session):
    """Session with ``expire_on_commit=False``.

    Prevents lazy-load surprises after commit.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def retryline_session_factory(engine: Engine) -> sessionmaker[RetrylineSession]:
    """Return a ``sessionmaker`` bound to *engine* producing ``RetrylineSession`` instances."""
    return sessionmaker(bind=engine, class_=RetrylineSession)


def _rewrite_placeholders(sql: str) -> str:
    """Turn positional ``?`` placeholders into ``:p0, :p1, ...`` for ``text()``."""
    rewritten, idx = [], 0
    for ch in sql:
        if ch == "?":
            rewritten.append(f":p{idx}")
            idx += 1
        else:
            rewritten.append(ch)
    return "".join(rewritten)


class SAConnectionBridge:
    """Adapter that makes a SQLAlchemy ``Session`` look like ``Connection``.

    Implements: ``execute``, ``executemany``, ``fetchone``, ``fetchall``,
    ``commit``, ``rollback``. ``execute`` returns the bridge itself so
    callers can use ``conn.execute(...).fetchall()`` as with ``sqlite3``.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._last_result: Any = None

    def execute(self, sql: str, parameters: Sequence[Any] | None = None) -> SAConnectionBridge:
        if parameters:
            mapping = {f"p{i}": v for i, v in enumerate(parameters)}
            self._last_result = self._session.execute(text(_rewrite_placeholders(sql)), mapping)
        else:
            self._last_result = self._session.execute(text(sql))
        return self

    def executemany(self, sql: str, seq_of_parameters: Sequence[Sequence[Any]]) -> SAConnectionBridge:
        stmt = text(_rewrite_placeholders(sql))
        rows = [{f"p{i}": v for i, v in enumerate(params)} for params in seq_of_parameters]
        if rows:
            self._session.execute(stmt, rows)
        self._last_result = None
        return self

    def fetchone(self) -> tuple[Any, ...] | None:
        if self._last_result is None or not self._last_result.returns_rows:
            return None
        row = self._last_result.fetchone()
        return tuple(row) if row is not None else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        if self._last_result is None or not self._last_result.returns_rows:
            return []
        return [tuple(r) for r in self._last_result.fetchall()]

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()

    @property
    def session(self) -> Session:
        """Access the underlying SA session (e.g., for ORM queries)."""
        return self._session
