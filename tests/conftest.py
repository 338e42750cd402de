"""Shared fixtures: a controllable clock, a scripted microphone and recognizer."""

import asyncio
import contextlib
import heapq
import json
from typing import Optional

import pytest
from websockets.asyncio.server import serve

from pet_companion.audio.processing import AudioFormat


async def settle(rounds: int = 20) -> None:
    """Let pending callbacks and freshly woken tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Clock whose time only moves when a test calls advance()."""

    def __init__(self, start: float = 1000.0):
        self._now = start
        self._sleepers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = 0

    def now(self) -> float:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._seq += 1
        heapq.heappush(self._sleepers, (self._now + seconds, self._seq, future))
        await future

    @property
    def pending(self) -> int:
        return sum(1 for _, _, future in self._sleepers if not future.done())

    async def advance(self, seconds: float) -> None:
        """Move time forward, waking sleepers in deadline order."""
        target = self._now + seconds
        await settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            self._now = max(self._now, deadline)
            if not future.done():
                future.set_result(None)
                await settle()
        self._now = target
        await settle()


class FakeMicrophone:
    """Microphone backend fed by the test."""

    def __init__(self, granted: bool = True, open_error: Optional[Exception] = None):
        self.granted = granted
        self.open_error = open_error
        self.on_chunk = None
        self.opened = 0
        self.closed = 0

    async def request_permission(self) -> bool:
        return self.granted

    async def open(self, on_chunk) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.on_chunk = on_chunk
        self.opened += 1

    async def close(self) -> None:
        self.on_chunk = None
        self.closed += 1

    def feed(self, ms: int, audio_format: AudioFormat = AudioFormat.WATSON_PCM16) -> None:
        """Deliver `ms` milliseconds of low-level noise."""
        frames = int(audio_format.sample_rate * ms / 1000) * audio_format.channels
        if self.on_chunk is not None:
            self.on_chunk(b"\x01\x00" * frames)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def microphone() -> FakeMicrophone:
    return FakeMicrophone()


class Recording:
    """What the scripted recognizer saw."""

    def __init__(self):
        self.path = ""
        self.headers = None
        self.control: list[dict] = []
        self.audio = bytearray()
        self.binary_frames = 0


async def read_until_stop(ws, seen: Recording) -> None:
    async for message in ws:
        if isinstance(message, bytes):
            seen.audio.extend(message)
            seen.binary_frames += 1
            continue
        frame = json.loads(message)
        seen.control.append(frame)
        if frame.get("action") == "stop":
            return


@contextlib.asynccontextmanager
async def recognizer(script, **serve_kwargs):
    """Run `script(ws, seen)` for each connection; yields (url, seen)."""
    seen = Recording()

    async def handler(ws):
        seen.path = ws.request.path
        seen.headers = ws.request.headers
        await script(ws, seen)

    async with serve(handler, "127.0.0.1", 0, **serve_kwargs) as server:
        port = server.sockets[0].getsockname()[1]
        yield f"ws://127.0.0.1:{port}/v1/recognize", seen
