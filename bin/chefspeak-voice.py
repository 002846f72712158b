#!/usr/bin/env python3
"""ChefSpeak voice daemon.

Without options, listens continuously and answers through the speech output
chain. ``--parse`` prints the command for a transcript; ``--say`` speaks one
line and exits.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal

from chefspeak.voice.config import VoiceConfig
from chefspeak.voice.intent_parser import IntentParser
from chefspeak.voice.session import build_speech_output, build_voice_session, load_lexicon

LOGGER = logging.getLogger("chefspeak-voice")


async def _say(config: VoiceConfig, text: str) -> int:
    output = build_speech_output(config, LOGGER)
    try:
        spoken = await output.speak(text)
    finally:
        await output.close()
    if not spoken:
        LOGGER.error("Could not speak: %s", output.last_error or "nothing to say")
        return 1
    return 0


async def _run(config: VoiceConfig) -> int:
    session = build_voice_session(config, logger=LOGGER)
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        LOGGER.info("Received signal %s, shutting down", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    await session.start()
    try:
        await stop_event.wait()
    finally:
        await session.close()
    return 0


async def main() -> int:
    parser = argparse.ArgumentParser(description="ChefSpeak voice interaction daemon")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--parse", metavar="TRANSCRIPT", help="print the parsed command for a transcript")
    parser.add_argument("--say", metavar="TEXT", help="speak TEXT once and exit")
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    config = VoiceConfig.from_env()
    if args.parse is not None:
        command = IntentParser(load_lexicon(config, LOGGER)).parse(args.parse)
        print(json.dumps(command.to_dict(), indent=2, ensure_ascii=False))
        return 0
    if args.say is not None:
        return await _say(config, args.say)
    return await _run(config)


if __name__ == "__main__":
    try:
        raise SystemExit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass
