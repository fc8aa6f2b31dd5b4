"""Declarative base and type-map for the retryline ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.
"""

from __future__ import annotations

from sqlalchemy import Integer, Text
from sqlalchemy.orm import DeclarativeBase


class RetrylineBase(DeclarativeBase):
    """Shared declarative base for every retryline table.

    * ``str``  → ``Text``
    * ``int``  → ``Integer``
    * ``bool`` → ``Integer``  (SQLite has no native BOOLEAN)
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Integer,  # SQLite compat: 0/1
    }
