"""
Speech input: continuous recognition with a two-state listening controller

The controller is either idle or listening. While listening, a recognizer
task runs in the configured locale and every finalized transcript is handed to
``on_transcript``. Debouncing and duplicate suppression belong to the consumer
(see ``debounce.TranscriptDebouncer``); ``on_listen_start`` lets the consumer
reset its duplicate memory each time a new listening session begins.

Recognizer failures are logged and drop the controller back to idle. There is
no automatic restart; the caller decides when to listen again.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from .audio import MicrophoneStream, record_phrase
from .config import MicConfig, PhraseConfig, WyomingEndpoint
from .wyoming import transcribe_pcm

LOGGER = logging.getLogger("chefspeak.voice.recognition")

ListeningState = Literal["idle", "listening"]

RECOGNITION_LOCALES: dict[str, str] = {
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "hi": "hi-IN",
    "te": "te-IN",
}
DEFAULT_RECOGNITION_LOCALE = "en-US"


def recognition_locale(language: str | None) -> str:
    return RECOGNITION_LOCALES.get((language or "").strip().lower(), DEFAULT_RECOGNITION_LOCALE)


class RecognitionError(RuntimeError):
    """Raised by recognizers when the underlying engine fails."""


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str
    confidence: float | None = None
    final: bool = True


ResultCallback = Callable[[RecognitionResult], None]


class SpeechRecognizer:
    """Continuous recognizer: runs until cancelled, emitting results as they arrive."""

    async def run(self, locale: str, emit: ResultCallback) -> None:
        raise NotImplementedError


class WyomingRecognizer(SpeechRecognizer):
    """Phrase-at-a-time recognition: capture until silence, then ask a Wyoming ASR service."""

    def __init__(
        self,
        endpoint: WyomingEndpoint,
        mic_config: MicConfig,
        phrase_config: PhraseConfig,
        *,
        timeout: float | None = 30.0,
        mic: MicrophoneStream | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.mic_config = mic_config
        self.phrase_config = phrase_config
        self.timeout = timeout
        self._logger = logger or LOGGER
        self._mic = mic or MicrophoneStream(mic_config.command, mic_config.bytes_per_chunk, logger=self._logger)

    async def run(self, locale: str, emit: ResultCallback) -> None:
        language = locale.split("-", 1)[0]
        await self._mic.start()
        try:
            while True:
                audio = await record_phrase(self._mic, self.mic_config, self.phrase_config)
                if not audio:
                    continue
                try:
                    text = await transcribe_pcm(
                        audio,
                        endpoint=self.endpoint,
                        mic=self.mic_config,
                        language=language,
                        timeout=self.timeout,
                        logger=self._logger,
                    )
                except (OSError, asyncio.TimeoutError) as exc:
                    raise RecognitionError(f"ASR request failed: {exc}") from exc
                if text and text.strip():
                    emit(RecognitionResult(transcript=text.strip(), final=True))
        finally:
            await self._mic.stop()


class SpeechInputController:
    """Owns the listening state and the recognizer task."""

    def __init__(
        self,
        recognizer: SpeechRecognizer,
        *,
        language: str = "en",
        settle_seconds: float = 0.3,
        on_transcript: Callable[[str], None] | None = None,
        on_listen_start: Callable[[], None] | None = None,
        on_state_change: Callable[[ListeningState], Awaitable[None] | None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.recognizer = recognizer
        self.language = language
        self.settle_seconds = settle_seconds
        self._on_transcript = on_transcript
        self._on_listen_start = on_listen_start
        self._on_state_change = on_state_change
        self._logger = logger or LOGGER
        self._state: ListeningState = "idle"
        self._task: asyncio.Task | None = None
        self._restart_task: asyncio.Task | None = None
        self.transcript = ""
        self.confidence: float | None = None
        self.last_error: str | None = None

    @property
    def state(self) -> ListeningState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state == "listening"

    @property
    def locale(self) -> str:
        return recognition_locale(self.language)

    async def start_listening(self) -> None:
        if self._state == "listening":
            return
        self.transcript = ""
        self.confidence = None
        self.last_error = None
        if self._on_listen_start is not None:
            self._on_listen_start()
        self._logger.info("Listening (%s)", self.locale)
        self._task = asyncio.create_task(self._run(self.locale))
        await self._set_state("listening")

    async def stop_listening(self) -> None:
        self._cancel_restart()
        await self._stop_task()
        await self._set_state("idle")

    async def set_language(self, language: str) -> None:
        """Switch recognition language, restarting after a settle delay if currently listening."""
        language = (language or "").strip().lower() or self.language
        if not self.is_listening:
            self.language = language
            return
        self._logger.debug("Restarting recognition for language %s", language)
        await self._stop_task()
        await self._set_state("idle")
        self.language = language
        self._cancel_restart()
        self._restart_task = asyncio.create_task(self._restart_after_settle())

    async def close(self) -> None:
        await self.stop_listening()

    async def _restart_after_settle(self) -> None:
        await asyncio.sleep(self.settle_seconds)
        self._restart_task = None
        await self.start_listening()

    def _cancel_restart(self) -> None:
        task, self._restart_task = self._restart_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _stop_task(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self, locale: str) -> None:
        try:
            await self.recognizer.run(locale, self._handle_result)
            self._logger.debug("Recognizer ended")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.last_error = str(exc)
            self._logger.warning("Speech recognition error: %s", exc)
        if self._task is asyncio.current_task():
            self._task = None
            await self._set_state("idle")

    def _handle_result(self, result: RecognitionResult) -> None:
        if not result.final:
            return
        text = result.transcript.strip()
        if not text:
            return
        self.transcript = text
        self.confidence = result.confidence
        self._logger.debug("Transcript (%s): %s", result.confidence, text)
        if self._on_transcript is not None:
            self._on_transcript(text)

    async def _set_state(self, state: ListeningState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._on_state_change is None:
            return
        try:
            result = self._on_state_change(state)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            self._logger.exception("Listening state callback failed")
