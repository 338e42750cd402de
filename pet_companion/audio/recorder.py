"""Microphone recorder with a hard duration limit.

The recorder owns exactly one RecordingSession at a time. Starting while a
session is recording is rejected, never queued. A hard-stop task enforces the
maximum duration and a one-shot warning task fires near the limit; a manual
stop cancels both so the stop path runs exactly once.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol

import numpy as np

from ..clock import DEFAULT_CLOCK, Clock
from ..constants import CHUNK_MS, MAX_RECORDING_SECONDS, WARNING_RATIO
from ..livetypes import AlreadyActiveError, PermissionDeniedError
from .processing import AudioFormat, pcm_duration_ms, pcm_to_wav, resample

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[bytes], None]
WarningCallback = Callable[[int], None]
AutoStopCallback = Callable[["AudioArtifact"], Awaitable[None]]


class RecordingStatus(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"


@dataclass(frozen=True)
class AudioArtifact:
    """Finalized recording: a complete WAV file held in memory."""

    data: bytes
    audio_format: AudioFormat
    duration_ms: int

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class RecordingSession:
    """State of the current (or last) recording."""

    status: RecordingStatus = RecordingStatus.IDLE
    started_at: Optional[float] = None
    stopped_at: Optional[float] = None
    artifact: Optional[AudioArtifact] = None
    warned: bool = False

    def elapsed_ms(self, now: float) -> int:
        if self.started_at is None:
            return 0
        end = self.stopped_at if self.stopped_at is not None else now
        return max(0, int((end - self.started_at) * 1000))


@dataclass(frozen=True)
class RecorderConfig:
    """Recording limits and capture format."""

    max_duration: float = MAX_RECORDING_SECONDS
    warning_ratio: float = WARNING_RATIO
    audio_format: AudioFormat = field(default_factory=lambda: AudioFormat.WATSON_PCM16)

    @property
    def warning_at(self) -> Optional[float]:
        """Seconds after start at which the advisory fires, or None if disabled."""
        if not 0 < self.warning_ratio < 1:
            return None
        return self.max_duration * self.warning_ratio

    @property
    def max_duration_ms(self) -> int:
        return int(self.max_duration * 1000)


class MicrophoneBackend(Protocol):
    """Protocol for microphone capture devices."""

    async def request_permission(self) -> bool:
        """Ask for microphone access. Returns True when granted."""
        ...

    async def open(self, on_chunk: ChunkCallback) -> None:
        """Start capturing; deliver PCM16 chunks on the event loop."""
        ...

    async def close(self) -> None:
        """Stop capturing and release the device."""
        ...


class SoundDeviceMicrophone:
    """Microphone capture through PortAudio (python-sounddevice).

    The PortAudio callback runs on its own thread; chunks are handed back to
    the event loop with call_soon_threadsafe so all buffering stays on the
    loop.
    """

    def __init__(
        self,
        audio_format: AudioFormat = AudioFormat.WATSON_PCM16,
        chunk_ms: int = CHUNK_MS,
        device: Optional[int | str] = None,
        capture_rate: Optional[int] = None,
    ):
        self.audio_format = audio_format
        self.chunk_ms = chunk_ms
        self.device = device
        self.capture_rate = capture_rate or audio_format.sample_rate
        self._stream = None
        self.dropped_chunks = 0

    async def request_permission(self) -> bool:
        import sounddevice as sd

        def _query() -> bool:
            try:
                sd.query_devices(self.device, kind="input")
                return True
            except (sd.PortAudioError, ValueError) as e:
                logger.warning(f"No usable input device: {e}")
                return False

        return await asyncio.to_thread(_query)

    async def open(self, on_chunk: ChunkCallback) -> None:
        import sounddevice as sd

        if self._stream is not None:
            return

        loop = asyncio.get_running_loop()
        target_rate = self.audio_format.sample_rate

        def _callback(indata, frames, time_info, status) -> None:
            if status:
                logger.debug(f"Input stream status: {status}")
            audio = np.asarray(indata, dtype=np.int16).reshape(-1)
            if self.capture_rate != target_rate:
                audio = resample(audio, self.capture_rate, target_rate)
            try:
                loop.call_soon_threadsafe(on_chunk, audio.astype("<i2").tobytes())
            except RuntimeError:
                # Loop already closed
                self.dropped_chunks += 1

        blocksize = int(self.capture_rate * self.chunk_ms / 1000)
        self._stream = sd.InputStream(
            samplerate=self.capture_rate,
            channels=self.audio_format.channels,
            dtype="int16",
            blocksize=blocksize,
            device=self.device,
            callback=_callback,
        )
        self._stream.start()
        logger.info(
            "Microphone opened",
            extra={"sample_rate": self.capture_rate, "blocksize": blocksize},
        )

    async def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()
        logger.info("Microphone closed")


class Recorder:
    """Records one PCM16 WAV artifact at a time.

    Usage:
        recorder = Recorder(SoundDeviceMicrophone())
        await recorder.start()
        ...
        artifact = await recorder.stop()
    """

    def __init__(
        self,
        microphone: MicrophoneBackend,
        config: Optional[RecorderConfig] = None,
        clock: Optional[Clock] = None,
        on_warning: Optional[WarningCallback] = None,
        on_auto_stop: Optional[AutoStopCallback] = None,
    ):
        self.microphone = microphone
        self.config = config or RecorderConfig()
        self.clock = clock or DEFAULT_CLOCK
        self.on_warning = on_warning
        self.on_auto_stop = on_auto_stop

        self._session = RecordingSession()
        self._buffer = bytearray()
        self._starting = False
        self._hard_stop_task: Optional[asyncio.Task] = None
        self._warning_task: Optional[asyncio.Task] = None

    @property
    def session(self) -> RecordingSession:
        return self._session

    @property
    def status(self) -> RecordingStatus:
        return self._session.status

    @property
    def is_recording(self) -> bool:
        return self._session.status == RecordingStatus.RECORDING

    @property
    def elapsed_ms(self) -> int:
        elapsed = self._session.elapsed_ms(self.clock.now())
        return min(elapsed, self.config.max_duration_ms)

    async def start(self) -> RecordingSession:
        """Begin a new recording.

        Raises:
            AlreadyActiveError: If a session is starting, recording or still
                being processed
            PermissionDeniedError: If microphone access is refused or unavailable
        """
        if self._starting or self.is_recording:
            raise AlreadyActiveError()
        if self.status == RecordingStatus.PROCESSING:
            raise AlreadyActiveError("The previous recording is still being processed")

        self._starting = True
        try:
            if not await self.microphone.request_permission():
                raise PermissionDeniedError()

            self._cancel_timers()
            self._buffer = bytearray()
            try:
                await self.microphone.open(self._on_chunk)
            except Exception as e:
                logger.error(f"Failed to open microphone: {e}")
                self._session = RecordingSession()
                raise PermissionDeniedError(f"Microphone unavailable: {e}") from e

            self._session = RecordingSession(
                status=RecordingStatus.RECORDING,
                started_at=self.clock.now(),
            )
        finally:
            self._starting = False

        self._hard_stop_task = self._spawn_timer(
            self._hard_stop_after(self.config.max_duration)
        )
        warning_at = self.config.warning_at
        if warning_at is not None:
            self._warning_task = self._spawn_timer(self._warn_after(warning_at))

        logger.info(f"Recording started (max {self.config.max_duration:.0f}s)")
        return self._session

    async def stop(self) -> Optional[AudioArtifact]:
        """Finish the current recording.

        Returns:
            The finalized artifact, or None if nothing was recording
        """
        if not self.is_recording:
            return None

        # Flip state before the first suspension point so a concurrent
        # stop (manual or hard-stop) becomes a no-op.
        self._session.status = RecordingStatus.PROCESSING
        self._session.stopped_at = self.clock.now()
        self._cancel_timers()

        try:
            await self.microphone.close()
        except Exception as e:
            logger.warning(f"Error closing microphone: {e}")

        pcm = bytes(self._buffer)
        self._buffer = bytearray()
        audio_format = self.config.audio_format
        artifact = AudioArtifact(
            data=pcm_to_wav(pcm, audio_format),
            audio_format=audio_format,
            duration_ms=pcm_duration_ms(len(pcm), audio_format),
        )
        self._session.artifact = artifact
        logger.info(
            f"Recording stopped after {self._session.elapsed_ms(self.clock.now()) / 1000:.1f}s",
            extra={"bytes": artifact.size, "duration_ms": artifact.duration_ms},
        )
        return artifact

    def finish(self) -> None:
        """Mark processing of the last artifact as done; the artifact is kept."""
        if self._session.status == RecordingStatus.PROCESSING:
            self._session.status = RecordingStatus.IDLE

    async def reset(self) -> None:
        """Discard the current session and return to idle."""
        if self.is_recording:
            await self.stop()
        self._cancel_timers()
        self._buffer = bytearray()
        self._session = RecordingSession()

    def _on_chunk(self, chunk: bytes) -> None:
        if self.is_recording:
            self._buffer.extend(chunk)

    async def _hard_stop_after(self, delay: float) -> None:
        await self.clock.sleep(delay)
        if not self.is_recording:
            return

        logger.info("Reached max recording duration, auto-stopping")
        artifact = await self.stop()
        if artifact is not None and self.on_auto_stop is not None:
            await self.on_auto_stop(artifact)

    async def _warn_after(self, delay: float) -> None:
        await self.clock.sleep(delay)
        if not self.is_recording or self._session.warned:
            return

        self._session.warned = True
        elapsed = self.elapsed_ms
        logger.warning(
            f"Approaching {self.config.max_duration:.0f}s limit, "
            "recording will auto-stop"
        )
        if self.on_warning is not None:
            self.on_warning(elapsed)

    def _spawn_timer(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        task.add_done_callback(_log_timer_failure)
        return task

    def _cancel_timers(self) -> None:
        # The running timer keeps its own reference until the next start
        current = asyncio.current_task()
        for attr in ("_hard_stop_task", "_warning_task"):
            task = getattr(self, attr)
            if task is None or task is current:
                continue
            if not task.done():
                task.cancel()
            setattr(self, attr, None)


def _log_timer_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Recording timer failed: {error}", exc_info=error)
