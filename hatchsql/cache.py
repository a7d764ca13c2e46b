"""In-memory caching of columnar record batches and cache-key helpers."""

from __future__ import annotations

import dataclasses
import json
import math
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

Record = Mapping[str, Sequence[Any]]
"""A record batch: column name mapped to that column's values."""

_SCHEMA_OVERHEAD_PER_COLUMN = 32


def _column_bytes(values: Sequence[Any]) -> int:
    values = list(values)
    size = 0
    if any(v is None for v in values):
        size += (len(values) + 7) // 8
    varlen = [v for v in values if isinstance(v, (str, bytes, bytearray))]
    if varlen:
        size += 4 * (len(values) + 1)
        size += sum(len(v.encode("utf-8")) if isinstance(v, str) else len(v) for v in varlen)
    else:
        size += 8 * len(values)
    return size


def record_size(record: Record) -> int:
    """Estimate the memory held by a record: value buffers plus schema overhead."""
    data = sum(_column_bytes(values) for values in record.values())
    return data + _SCHEMA_OVERHEAD_PER_COLUMN * len(record)


@dataclasses.dataclass
class CacheEntry:
    """One cached record with its bookkeeping."""

    record: Record
    created_at: datetime
    last_used: datetime
    size: int


class Cache(ABC):
    """Interface of a record-batch cache."""

    @abstractmethod
    def get(self, key: str) -> Record | None:
        """Return the cached record or None."""

    @abstractmethod
    def put(self, key: str, record: Record) -> None:
        """Store a record under ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""

    @abstractmethod
    def close(self) -> None:
        """Release what the cache holds."""

    def __enter__(self) -> Cache:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryCache(Cache):
    """A size-bounded in-memory cache with least-recently-used eviction."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._current_size = 0
        self._lock = threading.RLock()

    @property
    def current_size(self) -> int:
        """Sum of the estimated sizes of all cached records."""
        with self._lock:
            return self._current_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Record | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry.last_used = _now()
            self._entries.move_to_end(key)
            return entry.record

    def put(self, key: str, record: Record) -> None:
        size = record_size(record)
        with self._lock:
            if size > self.max_size:
                return
            while self._current_size + size > self.max_size:
                if not self._entries:
                    return
                self._evict()
            old = self._entries.pop(key, None)
            if old is not None:
                self._current_size -= old.size
            now = _now()
            self._entries[key] = CacheEntry(record, now, now, size)
            self._current_size += size

    def delete(self, key: str) -> None:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is not None:
                self._current_size -= entry.size

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._current_size = 0

    def close(self) -> None:
        self.clear()

    def _evict(self) -> None:
        """Drop entries, least recently used first, until the cache is empty."""
        while self._current_size > 0 and self._entries:
            _, entry = self._entries.popitem(last=False)
            self._current_size -= entry.size


_ESCAPES = str.maketrans(
    {
        "\\": "\\\\",
        "|": "\\|",
        "=": "\\=",
        ",": "\\,",
        "{": "\\{",
        "}": "\\}",
        "[": "\\[",
        "]": "\\]",
    }
)


def escape(text: str) -> str:
    """Backslash-escape the separator characters used in rendered keys."""
    return text.translate(_ESCAPES)


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    text = "".join(map(str, digits))
    point = len(text) + exponent
    exp = point - 1
    if exp < -4 or exp >= 6:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        return f"{sign}{mantissa}e{'-' if exp < 0 else '+'}{abs(exp):02d}"
    if point <= 0:
        return f"{sign}0.{'0' * -point}{text}"
    if point >= len(text):
        return f"{sign}{text}{'0' * (point - len(text))}"
    return f"{sign}{text[:point]}.{text[point:]}"


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    return text + "Z"


def render_value(value: Any) -> str:
    """Render a parameter value as a canonical, deterministic string.

    Naive datetimes are taken to be in UTC.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, str):
        return escape(value)
    if isinstance(value, datetime):
        return _format_time(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(render_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        keys = sorted(value, key=str)
        parts = (f"{render_value(k)}:{render_value(value[k])}" for k in keys)
        return "{" + ",".join(parts) + "}"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        encoded = json.dumps(dataclasses.asdict(value), separators=(",", ":"), default=str)
        return escape(encoded)
    return escape(repr(value))


class DefaultCacheKeyGenerator:
    """Builds cache keys for queries."""

    def generate_key(self, query: str, params: Mapping[str, Any] | None = None) -> str:
        """Return the query text as the key; parameters are not part of it.

        Raises TypeError when the query is not a string.
        """
        if not isinstance(query, str):
            raise TypeError(f"query must be a string, not {type(query).__name__}")
        return query