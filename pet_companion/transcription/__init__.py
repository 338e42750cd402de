"""Voice sessions and the transport fallback chain."""

from ..livetypes import TranscriptionResult
from .fallback import FallbackTranscriber
from .session import SessionOutcome, VoiceSession, format_duration

__all__ = [
    "FallbackTranscriber",
    "SessionOutcome",
    "TranscriptionResult",
    "VoiceSession",
    "format_duration",
]
