"""Tests for the transport fallback chain."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from pet_companion.audio.processing import AudioFormat, pcm_to_wav
from pet_companion.audio.recorder import AudioArtifact
from pet_companion.livetypes import (
    AuthError,
    NoSpeechDetectedError,
    StrategiesExhaustedError,
    TooLargeError,
    TranscriptionResult,
    TransportError,
    WatsonConnectionError,
)
from pet_companion.transcription.fallback import FallbackTranscriber
from pet_companion.transport.strategies import DEFAULT_STRATEGIES


def artifact(ms: int = 1000) -> AudioArtifact:
    fmt = AudioFormat.WATSON_PCM16
    pcm = b"\x01\x00" * int(fmt.sample_rate * ms / 1000)
    return AudioArtifact(data=pcm_to_wav(pcm, fmt), audio_format=fmt, duration_ms=ms)


class ScriptedRecognizer:
    """Fails or succeeds per attempt, in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, str]] = []

    async def recognize(self, audio, token, strategy):
        self.calls.append((strategy.name, token))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_tokens(token: str = "tok") -> AsyncMock:
    tokens = AsyncMock()
    tokens.get_token.return_value = token
    return tokens


class TestFallbackChain:
    """Tests for FallbackTranscriber ordering and early exit."""

    @pytest.mark.asyncio
    async def test_third_method_succeeds(self, clock):
        """Test failures on methods 1 and 2 fall through to method 3."""
        result = TranscriptionResult("hello", 0.9, method="mobile-browser")
        client = ScriptedRecognizer(
            TransportError(code=1006),
            WatsonConnectionError("refused"),
            result,
        )
        tokens = make_tokens()
        chain = FallbackTranscriber(client, tokens, retry_delay=0, clock=clock)

        assert await chain.transcribe(artifact()) is result
        assert [name for name, _ in client.calls] == [s.name for s in DEFAULT_STRATEGIES]
        assert [a.outcome for a in chain.last_attempts] == ["transport", "connection", "success"]
        tokens.get_token.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_first_success_stops_chain(self, clock):
        """Test later strategies are not tried after a success."""
        client = ScriptedRecognizer(TranscriptionResult("hi"))
        chain = FallbackTranscriber(client, make_tokens(), retry_delay=0, clock=clock)

        await chain.transcribe(artifact())

        assert len(client.calls) == 1
        assert chain.last_attempts[0].succeeded

    @pytest.mark.asyncio
    async def test_token_shared_across_attempts(self, clock):
        """Test every attempt uses the same token."""
        client = ScriptedRecognizer(
            TransportError(code=1011), TranscriptionResult("hi")
        )
        chain = FallbackTranscriber(client, make_tokens("shared"), retry_delay=0, clock=clock)

        await chain.transcribe(artifact())

        assert {token for _, token in client.calls} == {"shared"}

    @pytest.mark.asyncio
    async def test_all_fail(self, clock):
        """Test exhaustion reports the last error and every attempt."""
        client = ScriptedRecognizer(
            TransportError(code=1006),
            TransportError(code=1011),
            WatsonConnectionError("WebSocket connection refused"),
        )
        chain = FallbackTranscriber(client, make_tokens(), retry_delay=0, clock=clock)

        with pytest.raises(StrategiesExhaustedError) as exc_info:
            await chain.transcribe(artifact())

        error = exc_info.value
        assert len(error.attempts) == 3
        assert error.last_error == "WebSocket connection refused"
        assert "WebSocket connection refused" in str(error)

    @pytest.mark.asyncio
    async def test_non_retryable_ends_chain(self, clock):
        """Test a no-speech result is final and not retried."""
        client = ScriptedRecognizer(NoSpeechDetectedError(), TranscriptionResult("x"))
        chain = FallbackTranscriber(client, make_tokens(), retry_delay=0, clock=clock)

        with pytest.raises(NoSpeechDetectedError):
            await chain.transcribe(artifact())
        assert len(client.calls) == 1
        assert chain.last_attempts[0].outcome == "no_speech"

    @pytest.mark.asyncio
    async def test_retry_delay_between_attempts(self, clock):
        """Test the chain waits retry_delay between strategies."""
        client = ScriptedRecognizer(
            TransportError(code=1006), TranscriptionResult("hi")
        )
        chain = FallbackTranscriber(client, make_tokens(), retry_delay=1.0, clock=clock)
        start = clock.now()

        task = asyncio.create_task(chain.transcribe(artifact()))
        await clock.advance(0.5)
        assert len(client.calls) == 1
        await clock.advance(0.5)
        result = await task

        assert result.transcript == "hi"
        assert len(client.calls) == 2
        assert clock.now() == pytest.approx(start + 1.0)


class TestFallbackPreflight:
    """Tests for checks that run before any network call."""

    @pytest.mark.asyncio
    async def test_too_large_rejected_before_token(self, clock):
        """Test an oversized artifact never fetches a token or connects."""
        client = ScriptedRecognizer()
        tokens = make_tokens()
        chain = FallbackTranscriber(client, tokens, max_bytes=1024, clock=clock)

        with pytest.raises(TooLargeError) as exc_info:
            await chain.transcribe(artifact())

        assert "File too large" in str(exc_info.value)
        tokens.get_token.assert_not_awaited()
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_at_ceiling_rejected(self, clock):
        """Test an artifact exactly at the ceiling is rejected."""
        chain = FallbackTranscriber(ScriptedRecognizer(), make_tokens(), max_bytes=100, clock=clock)
        with pytest.raises(TooLargeError):
            await chain.transcribe(b"\x00" * 100)

    @pytest.mark.asyncio
    async def test_empty_artifact(self, clock):
        """Test an artifact with no samples is reported as no speech."""
        tokens = make_tokens()
        chain = FallbackTranscriber(ScriptedRecognizer(), tokens, clock=clock)

        with pytest.raises(NoSpeechDetectedError):
            await chain.transcribe(artifact(0))
        tokens.get_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_auth_failure_propagates(self, clock):
        """Test a token failure ends the chain without any attempt."""
        tokens = AsyncMock()
        tokens.get_token.side_effect = AuthError("Token request failed: 400 - bad key", status=400)
        client = ScriptedRecognizer()
        chain = FallbackTranscriber(client, tokens, clock=clock)

        with pytest.raises(AuthError):
            await chain.transcribe(artifact())
        assert client.calls == []

    def test_requires_strategies(self):
        """Test an empty strategy list is rejected."""
        with pytest.raises(ValueError):
            FallbackTranscriber(ScriptedRecognizer(), make_tokens(), strategies=())
