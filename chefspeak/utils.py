"""
Small helpers shared across ChefSpeak

- Environment parsing: tolerant bool/int/float/millisecond conversion with defaults
- Async: optional timeouts around awaitables
- Bytes: fixed-size slicing of PCM buffers
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterator
from typing import TypeVar

T = TypeVar("T")

_TRUE_VALUES = frozenset({"1", "true", "yes", "y", "on"})


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Interpret env-style booleans; unset or blank means ``default``."""
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value.strip())
    except (AttributeError, ValueError):
        return default


def parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value.strip())
    except (AttributeError, ValueError):
        return default


def parse_ms(value: str | None, default_ms: int) -> float:
    """Milliseconds from the environment as non-negative seconds."""
    return max(0, parse_int(value, default_ms)) / 1000


async def await_with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout)


def chunk_bytes(data: bytes, size: int) -> Iterator[bytes]:
    """Yield ``size``-byte slices; the last one may be shorter."""
    if size <= 0:
        raise ValueError("Chunk size must be positive")
    view = memoryview(data)
    for start in range(0, len(data), size):
        yield bytes(view[start : start + size])
