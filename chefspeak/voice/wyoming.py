"""Wyoming protocol helpers for speech-to-text and local text-to-speech."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable

from wyoming.asr import Transcribe, Transcript
from wyoming.audio import AudioChunk, AudioStart, AudioStop
from wyoming.client import AsyncTcpClient
from wyoming.event import Event
from wyoming.tts import Synthesize, SynthesizeVoice

from chefspeak.utils import await_with_timeout, chunk_bytes

from .audio import PcmPlayer, scale_volume
from .config import MicConfig, WyomingEndpoint

LOGGER = logging.getLogger("chefspeak.voice.wyoming")


class WyomingAudioError(RuntimeError):
    """A Wyoming service closed the stream without producing audio."""


async def _send(client: AsyncTcpClient, event: Event, timeout: float | None) -> None:
    await await_with_timeout(client.write_event(event), timeout)


async def transcribe_pcm(
    audio: bytes,
    *,
    endpoint: WyomingEndpoint,
    mic: MicConfig,
    language: str | None = None,
    timeout: float | None = None,
    logger: logging.Logger | None = None,
) -> str | None:
    """Stream one captured phrase to a Wyoming ASR service and return its text."""
    log = logger or LOGGER
    client = AsyncTcpClient(endpoint.host, endpoint.port)
    await await_with_timeout(client.connect(), timeout)
    fmt = {"rate": mic.rate, "width": mic.width, "channels": mic.channels}
    try:
        await _send(client, Transcribe(name=endpoint.model, language=language).event(), timeout)
        await _send(client, AudioStart(**fmt).event(), timeout)
        for chunk in chunk_bytes(audio, mic.bytes_per_chunk):
            await _send(client, AudioChunk(audio=chunk, **fmt).event(), timeout)
        await _send(client, AudioStop().event(), timeout)
        while True:
            event = await await_with_timeout(client.read_event(), timeout)
            if event is None:
                log.debug("ASR at %s:%s closed without a transcript", endpoint.host, endpoint.port)
                return None
            if Transcript.is_type(event.type):
                return Transcript.from_event(event).text
    finally:
        await client.disconnect()


async def _synthesis_events(
    text: str,
    *,
    endpoint: WyomingEndpoint,
    voice: SynthesizeVoice | None,
    timeout: float | None,
) -> AsyncIterator[Event]:
    client = AsyncTcpClient(endpoint.host, endpoint.port)
    await await_with_timeout(client.connect(), timeout)
    try:
        await _send(client, Synthesize(text=text, voice=voice).event(), timeout)
        while True:
            event = await await_with_timeout(client.read_event(), timeout)
            if event is None:
                return
            yield event
            if AudioStop.is_type(event.type):
                return
    finally:
        await client.disconnect()


async def speak_via_wyoming(
    text: str,
    *,
    endpoint: WyomingEndpoint,
    player: PcmPlayer,
    voice_name: str | None = None,
    language: str | None = None,
    volume: float = 1.0,
    on_start: Callable[[], None] | None = None,
    timeout: float | None = None,
) -> None:
    """Synthesize ``text`` with a Wyoming TTS service and play it as it streams in.

    Returns once the player has drained. Raises :class:`WyomingAudioError` if
    the service never sent audio.
    """
    voice = SynthesizeVoice(name=voice_name, language=language) if (voice_name or language) else None
    width = 2
    started = False
    try:
        async for event in _synthesis_events(text, endpoint=endpoint, voice=voice, timeout=timeout):
            if AudioStart.is_type(event.type):
                fmt = AudioStart.from_event(event)
                width = fmt.width
                await player.start(fmt.rate, fmt.width, fmt.channels)
                started = True
                if on_start is not None:
                    on_start()
            elif AudioChunk.is_type(event.type) and started:
                await player.write(scale_volume(AudioChunk.from_event(event).audio, volume, width))
        if not started:
            raise WyomingAudioError(f"TTS at {endpoint.host}:{endpoint.port} returned no audio")
        await player.finish()
    except BaseException:
        if started:
            await player.abort()
        raise
