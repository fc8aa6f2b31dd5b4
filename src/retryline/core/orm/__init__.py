"""SQLAlchemy 2.0 ORM layer for the retry tables.

The ledger and policy sources speak the raw ``Connection`` protocol; this
package mirrors ``retryline.core.schema`` with declarative models and
provides ``SAConnectionBridge`` so the same ledger can run inside an
SQLAlchemy session.

Modules
-------
base        RetrylineBase (declarative base)
session     Engine factory, RetrylineSession, SAConnectionBridge
tables      RetryPolicyTable, RetryLogTable
"""

from __future__ import annotations

from retryline.core.orm.base import RetrylineBase
from retryline.core.orm.session import (
    RetrylineSession,
    SAConnectionBridge,
    create_retryline_engine,
    retryline_session_factory,
)
from retryline.core.orm.tables import RetryLogTable, RetryPolicyTable

__all__ = [
    "RetrylineBase",
    "create_retryline_engine",
    "RetrylineSession",
    "retryline_session_factory",
    "SAConnectionBridge",
    "RetryPolicyTable",
    "RetryLogTable",
]
