"""Built-in demo retry handlers.

ARCHITECTURE
────────────
::

    Handlers (registered by register_builtin_handlers):
      demo.echo         ─ reports Success, echoing the request payload back
      demo.always-fail  ─ reports Failure on every attempt (walks a chain to its limit)
      demo.raise        ─ raises from invoke_retry (gateway error path)

Usage::

    from retryline.retry.builtin import register_builtin_handlers
    register_builtin_handlers(registry)
"""

from __future__ import annotations

from retryline.core.logging import get_logger

from .handlers import HandlerRegistry, RetryAwareHandler, get_default_registry
from .models import RetryLogRecord

logger = get_logger(__name__)


class EchoRetryHandler(RetryAwareHandler):
    """Succeed immediately, echoing the request payload as the response."""

    def invoke_retry(self, record: RetryLogRecord) -> None:
        logger.info("echo_retry_invoked", record_id=record.id, retry_count=record.retry_count)
        self.report_success(record, response_payload=record.request_payload)


class AlwaysFailRetryHandler(RetryAwareHandler):
    """Report a failure on every attempt."""

    def invoke_retry(self, record: RetryLogRecord) -> None:
        logger.info("always_fail_retry_invoked", record_id=record.id, retry_count=record.retry_count)
        self.report_failure(record, error_message=f"Intentional failure (attempt {record.retry_count + 1})")


class RaisingRetryHandler(RetryAwareHandler):
    """Raise from ``invoke_retry`` without reporting anything."""

    def invoke_retry(self, record: RetryLogRecord) -> None:
        raise RuntimeError(f"Intentional handler error for record {record.id}")


BUILTIN_HANDLERS: dict[str, type[RetryAwareHandler]] = {
    "demo.echo": EchoRetryHandler,
    "demo.always-fail": AlwaysFailRetryHandler,
    "demo.raise": RaisingRetryHandler,
}


def register_builtin_handlers(registry: HandlerRegistry | None = None) -> HandlerRegistry:
    """Register the demo handlers (default registry if none given)."""
    target = registry if registry is not None else get_default_registry()
    for process_name, handler_cls in BUILTIN_HANDLERS.items():
        target.register(process_name, handler_cls)
    return target


__all__ = [
    "AlwaysFailRetryHandler",
    "BUILTIN_HANDLERS",
    "EchoRetryHandler",
    "RaisingRetryHandler",
    "register_builtin_handlers",
]
