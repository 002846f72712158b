"""Local/offline speech synthesis used when the cloud voice is unavailable."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .audio import PcmPlayer
from .config import WyomingEndpoint
from .wyoming import WyomingAudioError, speak_via_wyoming

LOGGER = logging.getLogger("chefspeak.voice.local_tts")

LOCAL_LOCALES: dict[str, str] = {
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "hi": "hi-IN",
    "te": "te-IN",
}

# Engine errors that mean "someone stopped us", not "synthesis broke".
BENIGN_ERRORS = frozenset({"interrupted", "canceled"})


def local_locale(language: str) -> str:
    """Map a short language code to a locale; unknown values pass through unchanged."""
    return LOCAL_LOCALES.get((language or "").strip().lower(), language)


class LocalSynthesisError(RuntimeError):
    def __init__(self, error: str, message: str | None = None) -> None:
        super().__init__(message or error)
        self.error = error

    @property
    def benign(self) -> bool:
        return self.error in BENIGN_ERRORS


class LocalSynthesisEngine:
    """Platform speech engine: speak one utterance, or cancel whatever is in progress."""

    async def speak(
        self,
        text: str,
        *,
        locale: str,
        rate: float = 1.0,
        pitch: float = 1.0,
        volume: float = 1.0,
        on_start: Callable[[], None] | None = None,
    ) -> None:
        raise NotImplementedError

    async def cancel(self) -> None:
        raise NotImplementedError


class WyomingLocalEngine(LocalSynthesisEngine):
    """Piper (or any Wyoming TTS) on the local network.

    Piper has no rate or pitch controls, so only ``volume`` is honored. The
    voice is picked per locale from ``voices`` when given, else ``voice``.
    """

    def __init__(
        self,
        endpoint: WyomingEndpoint,
        *,
        player: PcmPlayer | None = None,
        voice: str | None = None,
        voices: dict[str, str] | None = None,
        timeout: float | None = 30.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._logger = logger or LOGGER
        self.player = player or PcmPlayer(logger=self._logger)
        self.voice = voice
        self.voices = voices or {}
        self.timeout = timeout
        self._cancel_requested = False

    async def speak(
        self,
        text: str,
        *,
        locale: str,
        rate: float = 1.0,
        pitch: float = 1.0,
        volume: float = 1.0,
        on_start: Callable[[], None] | None = None,
    ) -> None:
        self._cancel_requested = False
        voice_name = self.voices.get(locale) or self.voice
        try:
            await speak_via_wyoming(
                text,
                endpoint=self.endpoint,
                player=self.player,
                voice_name=voice_name,
                language=locale,
                volume=volume,
                on_start=on_start,
                timeout=self.timeout,
            )
        except WyomingAudioError as exc:
            raise LocalSynthesisError("synthesis-failed", str(exc)) from exc
        except (OSError, asyncio.TimeoutError) as exc:
            raise LocalSynthesisError("network", f"Local TTS unavailable: {exc}") from exc
        except RuntimeError as exc:
            if self._cancel_requested:
                raise LocalSynthesisError("interrupted") from exc
            raise LocalSynthesisError("audio-busy", str(exc)) from exc
        except Exception as exc:
            self._logger.exception("Unexpected local TTS error")
            raise LocalSynthesisError("synthesis-failed", str(exc)) from exc
        if self._cancel_requested:
            raise LocalSynthesisError("interrupted")

    async def cancel(self) -> None:
        self._cancel_requested = True
        await self.player.abort()
