"""
ChefSpeak - voice interaction core for a recipe-discovery assistant

Turns spoken utterances into structured recipe commands and turns
application responses back into speech.

Core modules:
- utils: Environment parsing and async helpers
- voice: Intent parsing, conversation context, speech input/output controllers
"""

__version__ = "0.4.2"
