"""Transcript debouncing with at-most-once delivery of identical utterances.

The recognizer may emit several updates for one burst of speech and may
re-emit a final transcript it already delivered. Consumers only want the last
value of each burst, once.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable

LOGGER = logging.getLogger("chefspeak.voice.debounce")

DEFAULT_QUIET_SECONDS = 1.0

TranscriptCallback = Callable[[str], Awaitable[None] | None]


def settle_transcripts(
    events: Iterable[tuple[float, str]],
    quiet_seconds: float = DEFAULT_QUIET_SECONDS,
    last_processed: str | None = None,
) -> list[str]:
    """Replay timestamped transcript updates and return what would be processed.

    A burst ends when the next update arrives ``quiet_seconds`` or more after
    the previous one, or when the stream ends. The last value of each burst is
    emitted unless it equals the most recently processed transcript.
    """
    emitted: list[str] = []
    pending: str | None = None
    previous_ts: float | None = None

    def flush() -> None:
        nonlocal last_processed
        if pending and pending != last_processed:
            emitted.append(pending)
            last_processed = pending

    for timestamp, value in sorted(events, key=lambda event: event[0]):
        if previous_ts is not None and timestamp - previous_ts >= quiet_seconds:
            flush()
        pending = (value or "").strip() or pending
        previous_ts = timestamp
    flush()
    return emitted


class TranscriptDebouncer:
    """Asyncio version of :func:`settle_transcripts` driving a callback."""

    def __init__(
        self,
        callback: TranscriptCallback,
        quiet_seconds: float = DEFAULT_QUIET_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self._callback = callback
        self.quiet_seconds = quiet_seconds
        self._logger = logger or LOGGER
        self._pending: str | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._last_processed: str | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def last_processed(self) -> str | None:
        return self._last_processed

    @property
    def pending(self) -> str | None:
        return self._pending

    def push(self, transcript: str) -> None:
        text = (transcript or "").strip()
        if not text:
            return
        self._pending = text
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.quiet_seconds, self._fire)

    def reset(self) -> None:
        """Start a new listening session: drop the pending value and the dedupe memory."""
        self.cancel()
        self._last_processed = None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None

    async def close(self) -> None:
        self.cancel()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        value, self._pending = self._pending, None
        if not value:
            return
        if value == self._last_processed:
            self._logger.debug("Skipping repeated transcript: %s", value)
            return
        self._last_processed = value
        try:
            result = self._callback(value)
        except Exception:
            self._logger.exception("Transcript callback failed")
            return
        if inspect.isawaitable(result):
            self._track(asyncio.ensure_future(result))

    def _track(self, task: asyncio.Future) -> None:
        self._tasks.add(task)

        def _done(finished: asyncio.Future) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                self._logger.error("Transcript handler raised: %s", exc, exc_info=exc)

        task.add_done_callback(_done)
