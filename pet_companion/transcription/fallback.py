"""Linear fallback chain over transport strategies.

The token is fetched once and shared by every attempt. Strategies are tried
in order and the first transcript wins. Retryable failures are recorded as
TransportAttempts and the next strategy is tried; anything else ends the
chain immediately.
"""

import logging
from typing import Optional, Protocol, Sequence

from ..audio.recorder import AudioArtifact
from ..clock import DEFAULT_CLOCK, Clock
from ..constants import MAX_AUDIO_BYTES, STRATEGY_RETRY_DELAY
from ..livetypes import (
    NoSpeechDetectedError,
    StrategiesExhaustedError,
    TooLargeError,
    TranscriptionResult,
    TransportAttempt,
    VoiceError,
)
from ..transport.strategies import DEFAULT_STRATEGIES, TransportStrategy

logger = logging.getLogger(__name__)


class TokenSource(Protocol):
    async def get_token(self) -> str: ...


class Recognizer(Protocol):
    async def recognize(
        self, audio: bytes, token: str, strategy: TransportStrategy
    ) -> TranscriptionResult: ...


class FallbackTranscriber:
    """Transcribes an artifact by trying each transport strategy in turn."""

    def __init__(
        self,
        client: Recognizer,
        tokens: TokenSource,
        strategies: Sequence[TransportStrategy] = DEFAULT_STRATEGIES,
        max_bytes: int = MAX_AUDIO_BYTES,
        retry_delay: float = STRATEGY_RETRY_DELAY,
        clock: Optional[Clock] = None,
    ):
        if not strategies:
            raise ValueError("At least one transport strategy is required")
        self.client = client
        self.tokens = tokens
        self.strategies = tuple(strategies)
        self.max_bytes = max_bytes
        self.retry_delay = retry_delay
        self.clock = clock or DEFAULT_CLOCK
        self.last_attempts: list[TransportAttempt] = []

    def check_size(self, size: int) -> None:
        """Raise TooLargeError if `size` is at or above the upload ceiling."""
        if size >= self.max_bytes:
            raise TooLargeError(size, self.max_bytes)

    async def transcribe(self, artifact: AudioArtifact | bytes) -> TranscriptionResult:
        """Transcribe one audio artifact.

        Raises:
            TooLargeError: Before any network call, if the artifact is too big
            NoSpeechDetectedError: If the artifact holds no audio, or the
                recognizer found no speech
            StrategiesExhaustedError: If every strategy failed
        """
        self.last_attempts = []
        if isinstance(artifact, AudioArtifact):
            audio = artifact.data
            empty = artifact.duration_ms == 0
        else:
            audio = artifact
            empty = not audio

        self.check_size(len(audio))
        if empty:
            raise NoSpeechDetectedError("No audio recorded")

        token = await self.tokens.get_token()
        total = len(self.strategies)

        for index, strategy in enumerate(self.strategies):
            if index and self.retry_delay > 0:
                await self.clock.sleep(self.retry_delay)

            logger.info(f"Attempt {index + 1}/{total}: {strategy.name}")
            started = self.clock.now()
            try:
                result = await self.client.recognize(audio, token, strategy)
            except VoiceError as e:
                self.last_attempts.append(
                    TransportAttempt(
                        method=strategy.name,
                        elapsed_ms=self._elapsed_ms(started),
                        outcome=e.kind.value,
                        message=str(e),
                    )
                )
                logger.warning(f"Method {index + 1} ({strategy.name}) failed: {e}")
                if not e.retryable:
                    raise
                continue

            self.last_attempts.append(
                TransportAttempt(
                    method=strategy.name,
                    elapsed_ms=self._elapsed_ms(started),
                    outcome="success",
                )
            )
            return result

        logger.error(f"All {total} transport strategies failed")
        raise StrategiesExhaustedError(self.last_attempts)

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self.clock.now() - started) * 1000))
