"""
Speech output with a cloud voice, local fallback, and one utterance at a time

Features:
- Sanitizing: text is reduced to words and basic punctuation before synthesis
- Cloud first: ElevenLabs PCM, cached per text and voice for the session
- Fallback chain: the local engine takes over when the cloud request or playback fails
- Bounded retries: at most ``max_fallback_attempts`` local attempts per speak() call
- Sticky configuration failure: once the cloud reports missing/invalid credentials it is skipped
- Mutual exclusion: every speak() or stop() tears down the previous utterance before anything new starts

The controller never raises out of speak(); terminal failures land in
``last_error`` and speak() returns False.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import OrderedDict
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from chefspeak.utils import chunk_bytes

from .audio import PcmPlayer
from .config import LocalVoiceConfig
from .elevenlabs import (
    ElevenLabsClient,
    SpeechSynthesisError,
    TTSNotConfiguredError,
    get_voice_by_id,
    get_voice_for_language,
)
from .local_tts import LocalSynthesisEngine, LocalSynthesisError, local_locale

LOGGER = logging.getLogger("chefspeak.voice.speech_output")

Provider = Literal["cloud", "local"]
SessionState = Literal["generating", "playing", "ended", "errored"]
OutputState = Literal["idle", "generating", "speaking"]

PLAYBACK_CHUNK_BYTES = 4096

_DISALLOWED_CHARS = re.compile(r"[^\w\s.,!?;:'\"()%&/-]")


def sanitize_speech_text(text: str | None) -> str:
    cleaned = (text or "").replace("’", "'").replace("“", '"').replace("”", '"')
    cleaned = _DISALLOWED_CHARS.sub(" ", cleaned).replace("_", " ")
    return re.sub(r"\s+", " ", cleaned).strip()


def speech_cache_key(text: str, voice_id: str | None, language: str, gender: str) -> str:
    return f"{text}-{voice_id or f'{language}-{gender}'}"


@dataclass(frozen=True)
class AudioClip:
    pcm: bytes
    rate: int
    width: int = 2
    channels: int = 1


class AudioCache:
    """Session-lifetime LRU of synthesized clips."""

    def __init__(self, max_entries: int = 64) -> None:
        self.max_entries = max(1, max_entries)
        self._entries: OrderedDict[str, AudioClip] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> AudioClip | None:
        clip = self._entries.get(key)
        if clip is not None:
            self._entries.move_to_end(key)
        return clip

    def put(self, key: str, clip: AudioClip) -> None:
        self._entries[key] = clip
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


@dataclass
class AudioSession:
    source_text: str
    cache_key: str
    provider: Provider
    state: SessionState = "generating"
    retry_count: int = 0
    error: str | None = None


class SpeechOutputController:
    def __init__(
        self,
        local: LocalSynthesisEngine,
        *,
        cloud: ElevenLabsClient | None = None,
        player: PcmPlayer | None = None,
        language: str = "en",
        prefer_cloud: bool = True,
        voice_gender: str = "female",
        voice_id: str | None = None,
        local_voice: LocalVoiceConfig | None = None,
        max_fallback_attempts: int = 2,
        local_settle_seconds: float = 0.1,
        cache: AudioCache | None = None,
        on_state_change: Callable[[OutputState], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.local = local
        self.cloud = cloud
        self._logger = logger or LOGGER
        self.player = player or PcmPlayer(logger=self._logger)
        self.language = language
        self.prefer_cloud = prefer_cloud
        self.voice_gender = voice_gender
        self.voice_id = voice_id
        self.local_voice = local_voice or LocalVoiceConfig(rate=0.9, pitch=1.0, volume=0.8, voice=None)
        self.max_fallback_attempts = max(0, max_fallback_attempts)
        self.local_settle_seconds = local_settle_seconds
        self.cache = cache or AudioCache()
        self.on_state_change = on_state_change
        self._lock = asyncio.Lock()
        self._active: asyncio.Task | None = None
        self._session: AudioSession | None = None
        self._generating = False
        self._speaking = False
        self._last_error: str | None = None
        self._cloud_unavailable = False
        self._narration = 0

    @property
    def is_generating(self) -> bool:
        return self._generating

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def session(self) -> AudioSession | None:
        return self._session

    @property
    def cloud_available(self) -> bool:
        return self.cloud is not None and self.cloud.configured and not self._cloud_unavailable

    async def speak(
        self,
        text: str,
        language: str | None = None,
        *,
        prefer_cloud: bool | None = None,
        voice_id: str | None = None,
    ) -> bool:
        """Speak ``text``, replacing anything already playing.

        Returns True once playback ends, False if the utterance was cancelled
        or every provider failed (see ``last_error``).
        """
        self._narration += 1
        return await self._speak(text, language, prefer_cloud, voice_id)

    async def narrate_steps(
        self,
        steps: Sequence[str],
        *,
        language: str | None = None,
        pause_seconds: float = 0.5,
        prefer_cloud: bool | None = None,
        voice_id: str | None = None,
    ) -> int:
        """Read recipe steps as "Step N: ..." one after another. Returns how many finished."""
        self._narration += 1
        token = self._narration
        spoken = 0
        instructions = [step for step in steps if step and step.strip()]
        for index, instruction in enumerate(instructions, start=1):
            if token != self._narration:
                break
            if not await self._speak(f"Step {index}: {instruction.strip()}", language, prefer_cloud, voice_id):
                break
            spoken += 1
            if token != self._narration:
                break
            if pause_seconds > 0 and index < len(instructions):
                await asyncio.sleep(pause_seconds)
        return spoken

    async def stop(self) -> None:
        """Silence whatever is active. Safe to call at any time."""
        self._narration += 1
        async with self._lock:
            await self._teardown()

    async def close(self) -> None:
        await self.stop()
        self.cache.clear()
        if self.cloud is not None:
            await self.cloud.close()

    async def _speak(
        self,
        text: str,
        language: str | None,
        prefer_cloud: bool | None,
        voice_id: str | None,
    ) -> bool:
        clean = sanitize_speech_text(text)
        if not clean:
            return False
        async with self._lock:
            await self._teardown()
            task = asyncio.create_task(
                self._run_chain(
                    clean,
                    language or self.language,
                    self.prefer_cloud if prefer_cloud is None else prefer_cloud,
                    voice_id or self.voice_id,
                )
            )
            self._active = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        if self._active is task:
            self._active = None
        if task.cancelled():
            return False
        return task.result()

    async def _teardown(self) -> None:
        task, self._active = self._active, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})
        await self.player.abort()
        await self.local.cancel()
        if self._session is not None and self._session.state in ("generating", "playing"):
            self._session.state = "ended"
        self._set_flags(generating=False, speaking=False)

    async def _run_chain(self, text: str, language: str, prefer_cloud: bool, voice_id: str | None) -> bool:
        key = speech_cache_key(text, voice_id, language, self.voice_gender)
        providers: list[Provider] = ["cloud"] if prefer_cloud and self.cloud_available else ["local"]
        providers.extend(["local"] * self.max_fallback_attempts)
        session = AudioSession(source_text=text, cache_key=key, provider=providers[0])
        self._session = session
        self._last_error = None
        error: Exception | None = None

        for attempt, provider in enumerate(providers):
            session.provider = provider
            session.retry_count = attempt
            session.state = "generating"
            try:
                if provider == "cloud":
                    await self._play_cloud(session, text, language, voice_id)
                else:
                    await self._play_local(session, text, language)
            except TTSNotConfiguredError as exc:
                self._cloud_unavailable = True
                self._logger.warning("Cloud voice not configured (%s); using local voice from now on", exc)
                error = exc
            except LocalSynthesisError as exc:
                if exc.benign:
                    session.state = "ended"
                    return True
                self._logger.warning("Local speech failed (%s): %s", exc.error, exc)
                error = exc
            except (SpeechSynthesisError, RuntimeError, OSError) as exc:
                self._logger.warning("%s speech failed: %s", provider.capitalize(), exc)
                error = exc
            except Exception as exc:
                self._logger.exception("Unexpected %s speech error", provider)
                error = exc
            else:
                session.state = "ended"
                return True
            finally:
                self._set_flags(generating=False, speaking=False)
            if attempt + 1 < len(providers):
                self._logger.info("Falling back to local voice (attempt %d/%d)", attempt + 1, len(providers) - 1)

        session.state = "errored"
        session.error = str(error) if error else "Speech synthesis failed"
        self._last_error = session.error
        self._logger.error("Speech output failed after %d attempt(s): %s", len(providers), session.error)
        return False

    async def _play_cloud(self, session: AudioSession, text: str, language: str, voice_id: str | None) -> None:
        if self.cloud is None:
            raise TTSNotConfiguredError("No cloud voice client")
        clip = self.cache.get(session.cache_key)
        if clip is None:
            voice = get_voice_by_id(voice_id) if voice_id else get_voice_for_language(language, self.voice_gender)
            self._set_flags(generating=True)
            pcm = await self.cloud.synthesize(text, voice.id)
            self._set_flags(generating=False)
            clip = AudioClip(pcm=pcm, rate=self.cloud.sample_rate)
            self.cache.put(session.cache_key, clip)
        else:
            self._logger.debug("Reusing cached audio for %r", text[:40])
        await self.player.start(clip.rate, clip.width, clip.channels)
        session.state = "playing"
        self._set_flags(speaking=True)
        for chunk in chunk_bytes(clip.pcm, PLAYBACK_CHUNK_BYTES):
            await self.player.write(chunk)
        await self.player.finish()

    async def _play_local(self, session: AudioSession, text: str, language: str) -> None:
        await self.local.cancel()
        if self.local_settle_seconds > 0:
            await asyncio.sleep(self.local_settle_seconds)

        def _started() -> None:
            session.state = "playing"
            self._set_flags(speaking=True)

        voice = self.local_voice
        await self.local.speak(
            text,
            locale=local_locale(language),
            rate=voice.rate,
            pitch=voice.pitch,
            volume=voice.volume,
            on_start=_started,
        )

    def _set_flags(self, *, generating: bool | None = None, speaking: bool | None = None) -> None:
        before = self._output_state()
        if generating is not None:
            self._generating = generating
        if speaking is not None:
            self._speaking = speaking
        after = self._output_state()
        if after != before and self.on_state_change is not None:
            try:
                self.on_state_change(after)
            except Exception:
                self._logger.exception("Speech state callback failed")

    def _output_state(self) -> OutputState:
        if self._speaking:
            return "speaking"
        if self._generating:
            return "generating"
        return "idle"
