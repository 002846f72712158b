"""Microphone capture and PCM playback through ALSA/PipeWire command-line tools."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import os
import shutil
import sys
from array import array
from asyncio.subprocess import Process

from .config import MicConfig, PhraseConfig

PLAYER_CANDIDATES = ("pw-play", "paplay", "aplay")

_ALSA_FORMATS = {1: "U8", 2: "S16_LE", 3: "S24_LE", 4: "S32_LE"}
_PW_FORMATS = {1: "s8", 2: "s16", 4: "s32"}
_PA_FORMATS = {1: "s8", 2: "s16le", 3: "s24le", 4: "s32le"}
_TYPECODES = {1: "b", 2: "h", 4: "i"}


class MicrophoneStream:
    """Raw PCM frames read from a capture command such as ``arecord``."""

    def __init__(self, command: list[str], bytes_per_chunk: int, logger: logging.Logger | None = None) -> None:
        self.command = command
        self.bytes_per_chunk = bytes_per_chunk
        self._proc: Process | None = None
        self._logger = logger or logging.getLogger(__name__)

    @property
    def running(self) -> bool:
        return self._proc is not None

    async def start(self) -> None:
        if self._proc:
            return
        self._logger.debug("Opening microphone: %s", " ".join(self.command))
        self._proc = await asyncio.create_subprocess_exec(
            *self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def read_chunk(self) -> bytes:
        if not self._proc or not self._proc.stdout:
            raise RuntimeError("Microphone is not open")
        try:
            return await self._proc.stdout.readexactly(self.bytes_per_chunk)
        except asyncio.IncompleteReadError as exc:
            detail = ""
            if self._proc.stderr:
                with contextlib.suppress(Exception):
                    detail = (await self._proc.stderr.read()).decode("utf-8", errors="ignore").strip()
            raise RuntimeError(f"Microphone closed unexpectedly ({detail})" if detail else "Microphone closed") from exc

    async def stop(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        self._logger.debug("Closing microphone")
        if proc.returncode is None:
            proc.terminate()
        with contextlib.suppress(asyncio.TimeoutError, ProcessLookupError):
            await asyncio.wait_for(proc.wait(), timeout=2)


class PcmPlayer:
    """Pipe raw PCM into ``pw-play``, ``paplay`` or ``aplay``.

    ``finish()`` lets queued audio drain and waits for the player to exit;
    ``abort()`` kills it immediately so nothing else is heard.
    """

    def __init__(self, binary: str | None = None, logger: logging.Logger | None = None) -> None:
        self.binary = binary or os.environ.get("CHEFSPEAK_AUDIO_PLAYER") or "auto"
        self._proc: Process | None = None
        self._logger = logger or logging.getLogger(__name__)

    @property
    def active(self) -> bool:
        return self._proc is not None

    async def start(self, rate: int, width: int, channels: int) -> None:
        await self.abort()
        player = resolve_player(self.binary, self._logger)
        try:
            cmd = build_player_command(player, rate, width, channels)
        except ValueError as exc:
            self._logger.warning("%s cannot play width=%s (%s); using aplay", player, width, exc)
            cmd = build_player_command("aplay", rate, width, channels)
        self._logger.debug("Starting playback: %s", " ".join(cmd))
        self._proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )

    async def write(self, chunk: bytes) -> None:
        if not self._proc or not self._proc.stdin:
            raise RuntimeError("Playback is not active")
        try:
            self._proc.stdin.write(chunk)
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            detail = await self._stderr_tail()
            await self.abort()
            raise RuntimeError(f"Player exited early ({detail})" if detail else "Player exited early") from exc

    async def finish(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        if proc.stdin:
            proc.stdin.close()
            with contextlib.suppress(BrokenPipeError, ConnectionResetError):
                await proc.stdin.wait_closed()
        await proc.wait()

    async def abort(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        self._logger.debug("Aborting playback")
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=2)

    async def _stderr_tail(self) -> str:
        if not self._proc or not self._proc.stderr:
            return ""
        try:
            data = await asyncio.wait_for(self._proc.stderr.read(), timeout=0.05)
        except (TimeoutError, RuntimeError):
            return ""
        return data.decode("utf-8", errors="ignore").strip()


def _player_available(binary: str) -> bool:
    if os.path.isabs(binary):
        return os.access(binary, os.X_OK)
    return shutil.which(binary) is not None


def resolve_player(preferred: str, logger: logging.Logger) -> str:
    if preferred != "auto":
        if _player_available(preferred):
            return preferred
        logger.warning("Audio player %s not found; auto-detecting", preferred)
    for candidate in PLAYER_CANDIDATES:
        if _player_available(candidate):
            return candidate
    return "aplay"


def build_player_command(player: str, rate: int, width: int, channels: int) -> list[str]:
    name = os.path.basename(player)
    if name == "pw-play":
        fmt = _PW_FORMATS.get(width)
        if not fmt:
            raise ValueError(f"no pw-play format for width={width}")
        return [player, "--raw", "--rate", str(rate), "--channels", str(channels), "--format", fmt, "-"]
    if name == "paplay":
        fmt = _PA_FORMATS.get(width, "s16le")
        return [player, "--raw", "--rate", str(rate), "--channels", str(channels), f"--format={fmt}", "-"]
    fmt = _ALSA_FORMATS.get(width, "S16_LE")
    return [player, "-q", "-t", "raw", "-f", fmt, "-c", str(channels), "-r", str(rate), "-"]


def _samples(chunk: bytes, sample_width: int) -> array | None:
    typecode = _TYPECODES.get(sample_width)
    if typecode is None or sample_width <= 0:
        return None
    frames = len(chunk) // sample_width
    samples = array(typecode)
    samples.frombytes(chunk[: frames * sample_width])
    if sample_width > 1 and sys.byteorder != "little":
        samples.byteswap()
    return samples


def compute_rms(chunk: bytes, sample_width: int) -> int:
    """Root mean square level of a PCM chunk."""
    samples = _samples(chunk, sample_width) if chunk else None
    if not samples:
        return 0
    return int(math.sqrt(math.fsum(value * value for value in samples) / len(samples)))


def scale_volume(chunk: bytes, volume: float, sample_width: int = 2) -> bytes:
    """Scale signed PCM by ``volume`` (0.0-1.0), clipping at the sample range."""
    if volume >= 1.0 or sample_width == 1:
        return chunk
    samples = _samples(chunk, sample_width)
    if samples is None:
        return chunk
    limit = 2 ** (8 * sample_width - 1) - 1
    factor = max(0.0, volume)
    for index, value in enumerate(samples):
        samples[index] = max(-limit - 1, min(limit, int(value * factor)))
    if sample_width > 1 and sys.byteorder != "little":
        samples.byteswap()
    return samples.tobytes()


async def record_phrase(mic: MicrophoneStream, mic_config: MicConfig, phrase: PhraseConfig) -> bytes | None:
    """Read one utterance: stop after ``silence_ms`` of quiet once ``min_seconds`` have passed."""
    chunk_ms = max(1, mic_config.chunk_ms)
    min_chunks = max(1, int(phrase.min_seconds * 1000 / chunk_ms))
    max_chunks = max(1, int(phrase.max_seconds * 1000 / chunk_ms))
    silence_chunks = max(1, int(phrase.silence_ms / chunk_ms))
    buffer = bytearray()
    heard_speech = False
    quiet = 0
    for index in range(max_chunks):
        chunk = await mic.read_chunk()
        buffer.extend(chunk)
        if compute_rms(chunk, mic_config.width) >= phrase.rms_floor:
            heard_speech = True
            quiet = 0
            continue
        if index >= min_chunks:
            quiet += 1
            if quiet >= silence_chunks:
                break
    if not heard_speech:
        return None
    return bytes(buffer)
