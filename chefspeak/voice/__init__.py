"""
Voice interaction core for ChefSpeak

Turns spoken utterances into structured recipe commands, keeps short-lived
conversation context between turns, and speaks replies through a cloud voice
with a local fallback.

- Speech recognition: continuous listening via Wyoming ASR with a two-state controller
- Intent parsing: ordered rule cascade over a fixed ingredient lexicon
- Conversation context: preference accumulation with a topic expiry timer
- Speech synthesis: ElevenLabs first, Wyoming/Piper fallback, one utterance at a time
- Cooking mode: hands-free next/previous/repeat/timer navigation

Key modules:
- config: Configuration from environment variables
- intent_parser: Transcript to Command
- conversation: Context merging, expiry, and exit phrases
- recognition: Speech input controller
- speech_output: Speech output controller
- session: Pipeline wiring and the dispatcher interface
"""

from __future__ import annotations

__all__ = [
    "config",
    "commands",
    "conversation",
    "cooking_mode",
    "debounce",
    "intent_parser",
    "lexicon",
    "recognition",
    "session",
    "speech_output",
]
