"""SQLAlchemy 2.0 table definitions for the retry tables.

Each class mirrors a ``CREATE TABLE`` in ``retryline.core.schema``.
Timestamps stay ``Text`` (fixed-width ISO 8601 UTC) so the due-time index
compares the same way through the ORM and through raw SQL.

Usage::

    from retryline.core.orm import RetrylineBase, create_retryline_engine

    engine = create_retryline_engine("sqlite:///retryline.db")
    RetrylineBase.metadata.create_all(engine)
"""

from __future__ import annotations

from sqlalchemy import Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from retryline.core.orm.base import RetrylineBase


class RetryPolicyTable(RetrylineBase):
    __tablename__ = "retry_policies"

    policy_key: Mapped[str] = mapped_column(Text, primary_key=True)
    process_name: Mapped[str] = mapped_column(Text, nullable=False)
    method_name: Mapped[str | None] = mapped_column(Text)
    max_retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    retry_interval_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    start_first_retry_after_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Integer, default=1, nullable=False)


class RetryLogTable(RetrylineBase):
    __tablename__ = "retry_log"
    __table_args__ = (
        Index("idx_retry_log_due", "retry_enabled", "processed", "retry_due_at"),
        Index("idx_retry_log_process", "process_name", "method_name"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    process_name: Mapped[str] = mapped_column(Text, nullable=False)
    method_name: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    processed: Mapped[bool] = mapped_column(Integer, default=0, nullable=False)
    request_payload: Mapped[str | None] = mapped_column(Text)
    response_payload: Mapped[str | None] = mapped_column(Text)
    error_message: Mapped[str | None] = mapped_column(Text)
    retry_enabled: Mapped[bool] = mapped_column(Integer, default=0, nullable=False)
    retry_interval_minutes: Mapped[int | None] = mapped_column(Integer)
    max_retry_limit: Mapped[int | None] = mapped_column(Integer)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    retry_due_at: Mapped[str | None] = mapped_column(Text)
    last_notification_id: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)
