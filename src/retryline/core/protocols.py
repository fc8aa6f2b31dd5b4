"""
Protocol definitions shared by the ledger and the policy sources.

``Connection`` is the minimal synchronous DB-API shape the retry core needs.
``sqlite3.Connection`` satisfies it natively; ``SAConnectionBridge`` adapts
an SQLAlchemy session to it.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS connection interface for database operations.

    Examples:
        >>> row = conn.execute("SELECT id FROM retry_log WHERE id = ?", ("abc",)).fetchone()
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters."""
        ...

    def executemany(self, sql: str, params: list[tuple]) -> Any:
        """Execute SQL statement for multiple parameter sets."""
        ...

    def commit(self) -> None:
        """Commit current transaction."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction."""
        ...


__all__ = ["Connection"]
