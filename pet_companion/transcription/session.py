"""Voice session - orchestrates recording and transcription.

This is the thin orchestration layer that glues together:
- Recorder (microphone capture, duration limit)
- FallbackTranscriber (token, transport strategies)
- Diagnostics (user-facing advice for failures)

The listening/processing flags are derived from the recorder, never stored
separately, so they cannot drift out of sync.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from ..audio.recorder import AudioArtifact, Recorder, RecordingStatus
from ..diagnostics import advice_for
from ..livetypes import (
    AlreadyActiveError,
    ErrorKind,
    StrategiesExhaustedError,
    TranscriptionResult,
    TransportAttempt,
    VoiceError,
)

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    """Protocol for anything that turns an artifact into a transcript."""

    last_attempts: list[TransportAttempt]

    async def transcribe(self, artifact: AudioArtifact) -> TranscriptionResult: ...


@dataclass(frozen=True)
class SessionOutcome:
    """What one finished recording turned into."""

    result: Optional[TranscriptionResult] = None
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""
    advice: str = ""
    attempts: tuple[TransportAttempt, ...] = ()
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def display_text(self) -> str:
        if self.result is not None:
            return self.result.transcript
        if self.advice:
            return f"{self.error_message}\n\n{self.advice}"
        return self.error_message

    @classmethod
    def from_error(
        cls,
        error: VoiceError,
        attempts: tuple[TransportAttempt, ...] = (),
        duration_ms: int = 0,
    ) -> "SessionOutcome":
        if isinstance(error, StrategiesExhaustedError):
            attempts = error.attempts
        return cls(
            error_kind=error.kind,
            error_message=str(error),
            advice=advice_for(error.kind),
            attempts=attempts,
            duration_ms=duration_ms,
        )


def format_duration(ms: int) -> str:
    """Format milliseconds as m:ss.

    Examples:
        >>> format_duration(65_000)
        '1:05'
    """
    seconds = max(0, ms) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


class VoiceSession:
    """Toggle-style voice input: start listening, stop, get a transcript.

    Usage:
        session = VoiceSession(recorder, transcriber)
        await session.toggle()            # starts recording
        outcome = await session.toggle()  # stops and transcribes
        print(outcome.display_text)
    """

    def __init__(
        self,
        recorder: Recorder,
        transcriber: Transcriber,
        on_update: Optional[Callable[[SessionOutcome], None]] = None,
    ):
        self.recorder = recorder
        self.transcriber = transcriber
        self.on_update = on_update
        self.latest: Optional[SessionOutcome] = None

        # Hard-stop artifacts take the same path as manual stops
        self.recorder.on_auto_stop = self._process

    @property
    def is_listening(self) -> bool:
        return self.recorder.is_recording

    @property
    def is_processing(self) -> bool:
        return self.recorder.status == RecordingStatus.PROCESSING

    @property
    def elapsed_ms(self) -> int:
        return self.recorder.elapsed_ms

    @property
    def elapsed_display(self) -> str:
        return format_duration(self.elapsed_ms)

    @property
    def transcript(self) -> str:
        if self.latest is None or self.latest.result is None:
            return ""
        return self.latest.result.transcript

    async def toggle(self) -> Optional[SessionOutcome]:
        """Start when idle, stop and transcribe when listening.

        Raises:
            AlreadyActiveError: If a transcription is still being processed
        """
        if self.is_listening:
            return await self.stop()
        await self.start()
        return None

    async def start(self) -> None:
        if self.is_processing:
            raise AlreadyActiveError("A transcription is already in progress")
        self.latest = None
        await self.recorder.start()

    async def stop(self) -> Optional[SessionOutcome]:
        """Stop recording and transcribe. Returns None if nothing was recording."""
        artifact = await self.recorder.stop()
        if artifact is None:
            return None
        return await self._process(artifact)

    async def clear(self) -> None:
        """Drop the last outcome and the recorded artifact."""
        self.latest = None
        await self.recorder.reset()

    async def _process(self, artifact: AudioArtifact) -> SessionOutcome:
        logger.info(f"Transcribing {artifact.size} bytes ({artifact.duration_ms}ms)")
        try:
            result = await self.transcriber.transcribe(artifact)
            outcome = SessionOutcome(
                result=result,
                attempts=tuple(self.transcriber.last_attempts),
                duration_ms=artifact.duration_ms,
            )
            logger.info(
                f"Transcript ready via {result.method}",
                extra={"confidence": result.confidence},
            )
        except VoiceError as e:
            logger.error(f"Transcription failed ({e.kind.value}): {e}")
            outcome = SessionOutcome.from_error(
                e,
                attempts=tuple(self.transcriber.last_attempts),
                duration_ms=artifact.duration_ms,
            )
        finally:
            self.recorder.finish()

        self.latest = outcome
        if self.on_update:
            self.on_update(outcome)
        return outcome
