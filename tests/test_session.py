"""Tests for the VoiceSession orchestrator."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from pet_companion.audio.recorder import Recorder, RecorderConfig, RecordingStatus
from pet_companion.livetypes import (
    AlreadyActiveError,
    ErrorKind,
    NoSpeechDetectedError,
    PermissionDeniedError,
    StrategiesExhaustedError,
    TranscriptionResult,
    TransportAttempt,
)
from pet_companion.protocols.watson import WatsonSTTConfig
from pet_companion.transcription.fallback import FallbackTranscriber
from pet_companion.transcription.session import SessionOutcome, VoiceSession, format_duration
from pet_companion.transport.watson_client import WatsonSTTClient

from conftest import FakeMicrophone, read_until_stop, recognizer


class FakeTranscriber:
    """Returns a fixed result or raises, optionally waiting on a gate."""

    def __init__(self, result=None, error=None):
        self.result = result or TranscriptionResult("feed the cat", 0.92, method="query-token")
        self.error = error
        self.gate = None
        self.artifacts = []
        self.last_attempts = []

    async def transcribe(self, artifact):
        self.artifacts.append(artifact)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            self.last_attempts = [TransportAttempt("query-token", 5, self.error.kind.value, str(self.error))]
            raise self.error
        self.last_attempts = [TransportAttempt("query-token", 5, "success")]
        return self.result


def make_session(clock, transcriber=None, microphone=None, **kwargs):
    microphone = microphone or FakeMicrophone()
    recorder = Recorder(
        microphone,
        config=RecorderConfig(max_duration=10, warning_ratio=0.9),
        clock=clock,
    )
    transcriber = transcriber or FakeTranscriber()
    return VoiceSession(recorder, transcriber, **kwargs), microphone, transcriber


class TestFormatDuration:
    """Tests for the m:ss display."""

    def test_formats(self):
        """Test minutes and zero-padded seconds."""
        assert format_duration(0) == "0:00"
        assert format_duration(9_999) == "0:09"
        assert format_duration(65_000) == "1:05"
        assert format_duration(300_000) == "5:00"

    def test_negative_clamped(self):
        """Test negative durations display as zero."""
        assert format_duration(-5) == "0:00"


class TestToggle:
    """Tests for toggle-driven sessions."""

    @pytest.mark.asyncio
    async def test_toggle_start_then_stop(self, clock):
        """Test toggle starts listening then returns the transcript."""
        session, microphone, transcriber = make_session(clock)

        assert await session.toggle() is None
        assert session.is_listening
        assert not session.is_processing

        microphone.feed(1500)
        await clock.advance(1.5)
        assert session.elapsed_display == "0:01"

        outcome = await session.toggle()

        assert outcome.ok
        assert outcome.display_text == "feed the cat"
        assert session.transcript == "feed the cat"
        assert outcome.duration_ms == 1500
        assert not session.is_listening
        assert not session.is_processing
        assert session.recorder.status == RecordingStatus.IDLE

    @pytest.mark.asyncio
    async def test_toggle_while_processing_rejected(self, clock):
        """Test toggling during transcription raises AlreadyActiveError."""
        transcriber = FakeTranscriber()
        transcriber.gate = asyncio.Event()
        session, microphone, _ = make_session(clock, transcriber)
        await session.toggle()
        microphone.feed(100)

        stop_task = asyncio.create_task(session.toggle())
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert session.is_processing

        with pytest.raises(AlreadyActiveError):
            await session.toggle()

        transcriber.gate.set()
        outcome = await stop_task
        assert outcome.ok
        assert microphone.opened == 1

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, clock):
        """Test stop without a recording returns None."""
        session, _, _ = make_session(clock)
        assert await session.stop() is None

    @pytest.mark.asyncio
    async def test_permission_error_propagates(self, clock):
        """Test start surfaces PermissionDeniedError to the caller."""
        session, _, _ = make_session(clock, microphone=FakeMicrophone(granted=False))

        with pytest.raises(PermissionDeniedError):
            await session.toggle()
        assert not session.is_listening


class TestOutcomes:
    """Tests for failure capture and updates."""

    @pytest.mark.asyncio
    async def test_failure_captured_with_advice(self, clock):
        """Test a transcription failure becomes an outcome, not an exception."""
        session, microphone, _ = make_session(
            clock, FakeTranscriber(error=NoSpeechDetectedError())
        )
        await session.start()
        microphone.feed(500)

        outcome = await session.stop()

        assert not outcome.ok
        assert outcome.error_kind == ErrorKind.NO_SPEECH
        assert outcome.error_message == "No speech detected"
        assert "microphone" in outcome.advice
        assert outcome.display_text.startswith("No speech detected\n\n")
        assert outcome.attempts[0].outcome == "no_speech"
        assert not session.is_processing

    @pytest.mark.asyncio
    async def test_exhausted_attempts_in_outcome(self, clock):
        """Test the outcome lists every attempt from an exhausted chain."""
        attempts = [
            TransportAttempt("query-token", 10, "transport", "closed"),
            TransportAttempt("bearer-header", 12, "connection", "refused"),
        ]
        error = StrategiesExhaustedError(attempts)

        outcome = SessionOutcome.from_error(error)

        assert outcome.attempts == tuple(attempts)
        assert outcome.error_kind == ErrorKind.EXHAUSTED
        assert "refused" in outcome.error_message

    @pytest.mark.asyncio
    async def test_on_update_called(self, clock):
        """Test on_update receives each outcome."""
        on_update = MagicMock()
        session, microphone, _ = make_session(clock, on_update=on_update)
        await session.toggle()
        microphone.feed(200)

        outcome = await session.toggle()

        on_update.assert_called_once_with(outcome)
        assert session.latest is outcome

    @pytest.mark.asyncio
    async def test_hard_stop_uses_same_pipeline(self, clock):
        """Test an auto-stopped recording is transcribed like a manual stop."""
        on_update = MagicMock()
        session, microphone, transcriber = make_session(clock, on_update=on_update)
        await session.toggle()
        microphone.feed(2000)

        await clock.advance(10)

        assert len(transcriber.artifacts) == 1
        assert session.latest.ok
        on_update.assert_called_once()
        assert not session.is_listening
        assert not session.is_processing

    @pytest.mark.asyncio
    async def test_clear(self, clock):
        """Test clear drops the outcome and the artifact."""
        session, microphone, _ = make_session(clock)
        await session.toggle()
        microphone.feed(200)
        await session.toggle()

        await session.clear()

        assert session.latest is None
        assert session.transcript == ""
        assert session.recorder.session.artifact is None

    @pytest.mark.asyncio
    async def test_new_recording_clears_previous_outcome(self, clock):
        """Test starting again discards the previous outcome."""
        session, microphone, _ = make_session(clock)
        await session.toggle()
        microphone.feed(200)
        await session.toggle()

        await session.toggle()

        assert session.latest is None
        assert session.is_listening
        await session.clear()


class StaticTokens:
    async def get_token(self) -> str:
        return "tok"


class TestWatsonPipeline:
    """Tests for a session wired to a real client and a scripted recognizer."""

    @pytest.mark.asyncio
    async def test_malformed_confidence_still_transcribed(self, clock):
        """Test a final result with a non-numeric confidence yields a transcript."""

        async def script(ws, seen):
            await ws.send(json.dumps({"state": "listening"}))
            await read_until_stop(ws, seen)
            await ws.send(
                json.dumps(
                    {
                        "results": [
                            {
                                "final": True,
                                "alternatives": [{"transcript": "hi", "confidence": "n/a"}],
                            }
                        ]
                    }
                )
            )

        async with recognizer(script) as (url, seen):
            config = WatsonSTTConfig(api_key="key", url=url, settle_delay=0, stop_delay=0)
            transcriber = FallbackTranscriber(WatsonSTTClient(config), StaticTokens())
            session, microphone, _ = make_session(clock, transcriber)
            await session.toggle()
            microphone.feed(300)

            outcome = await session.toggle()

        assert outcome.ok
        assert outcome.result.transcript == "hi"
        assert outcome.result.confidence == 0.0
        assert session.recorder.status == RecordingStatus.IDLE
