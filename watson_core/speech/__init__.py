"""
Speech
======

Stream-based speech recognition built on the connection layer.
"""

from watson_core.speech.listener import MAX_QUEUED_RECORDINGS, SpeechListener, peak_level

__all__ = [
    "MAX_QUEUED_RECORDINGS",
    "SpeechListener",
    "peak_level",
]
