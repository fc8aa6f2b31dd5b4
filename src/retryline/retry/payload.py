"""Typed access to opaque request/response payloads.

Payloads are stored as text. Handlers that know their payload is a JSON
object read attributes through ``PayloadReader`` instead of parsing by hand.

Example:
    >>> reader = PayloadReader('{"invoice": {"id": "INV-1"}, "amount": 12}')
    >>> reader.get("invoice.id").unwrap()
    'INV-1'
    >>> reader.get("currency").is_err()
    True
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from retryline.core.errors import AttributeNotFoundError, PayloadError
from retryline.core.result import Err, Ok, Result

from .models import RetryLogRecord

_MISSING = object()


class PayloadReader:
    """Reads named attributes from a JSON-object payload.

    Keys may be dotted paths (``"customer.address.city"``); list elements
    are addressed by index (``"items.0.sku"``).
    """

    def __init__(self, payload: str | Mapping[str, Any] | None):
        self._raw = payload
        self._data: Any = _MISSING
        self._parse_error: PayloadError | None = None

    @classmethod
    def request(cls, record: RetryLogRecord) -> PayloadReader:
        return cls(record.request_payload)

    @classmethod
    def response(cls, record: RetryLogRecord) -> PayloadReader:
        return cls(record.response_payload)

    @property
    def raw(self) -> str | Mapping[str, Any] | None:
        return self._raw

    def data(self) -> Result[Mapping[str, Any]]:
        """The parsed payload, or ``Err(PayloadError)`` if it is not a JSON object."""
        if self._data is _MISSING and self._parse_error is None:
            self._parse()
        if self._parse_error is not None:
            return Err(self._parse_error)
        return Ok(self._data)

    def get(self, key: str) -> Result[Any]:
        """Look up *key*; ``Err(AttributeNotFoundError)`` when absent."""
        parsed = self.data()
        if parsed.is_err():
            return parsed

        current: Any = parsed.unwrap()
        for part in key.split("."):
            current = _step(current, part)
            if current is _MISSING:
                return Err(AttributeNotFoundError(key))
        return Ok(current)

    def require(self, key: str) -> Any:
        """Like ``get`` but raises ``AttributeNotFoundError`` when absent."""
        return self.get(key).unwrap()

    def get_or(self, key: str, default: Any = None) -> Any:
        return self.get(key).unwrap_or(default)

    def has(self, key: str) -> bool:
        return self.get(key).is_ok()

    def _parse(self) -> None:
        raw = self._raw
        if isinstance(raw, Mapping):
            self._data = raw
            return
        if raw is None or not raw.strip():
            self._parse_error = PayloadError("Payload is empty")
            return
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            self._parse_error = PayloadError(f"Payload is not valid JSON: {e}", cause=e)
            return
        if not isinstance(value, dict):
            self._parse_error = PayloadError(f"Payload is not a JSON object (got {type(value).__name__})")
            return
        self._data = value


def _step(current: Any, part: str) -> Any:
    if isinstance(current, Mapping):
        return current.get(part, _MISSING)
    if isinstance(current, list) and part.isdigit():
        index = int(part)
        return current[index] if index < len(current) else _MISSING
    return _MISSING


__all__ = ["PayloadReader"]
