"""Watson STT WebSocket client.

This module handles one streaming recognition attempt against Watson's
/v1/recognize WebSocket. It separates I/O concerns from the message
format, which lives in protocols.watson.

An attempt walks an explicit state machine:

    IDLE -> CONNECTING -> NEGOTIATING -> STREAMING -> AWAITING_RESULT -> CLOSED

A receive task runs from the moment the socket opens, so errors reported
while audio is still being sent end the attempt immediately.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Optional

import websockets
from websockets import ClientConnection
from websockets.exceptions import InvalidStatus, WebSocketException

from ..clock import DEFAULT_CLOCK, Clock
from ..constants import WS_NORMAL_CLOSURE
from ..livetypes import (
    ConnectTimeoutError,
    NoSpeechDetectedError,
    RemoteError,
    TranscriptionResult,
    TranscriptionTimeoutError,
    TransportError,
    VoiceError,
    WatsonConnectionError,
)
from ..protocols.watson import (
    WatsonMessage,
    WatsonMessageType,
    WatsonSTTConfig,
    build_start_frame,
    build_stop_frame,
    get_watson_ws_url,
    parse_watson_message,
    redact_url,
)
from .strategies import QUERY_TOKEN, TransportStrategy

logger = logging.getLogger(__name__)

CLOSE_DESCRIPTIONS = {
    1002: "WebSocket protocol error",
    1006: "WebSocket connection lost - network issue",
    1011: "WebSocket server error",
}


class RecognizerState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    NEGOTIATING = "negotiating"
    STREAMING = "streaming"
    AWAITING_RESULT = "awaiting_result"
    CLOSED = "closed"


StateCallback = Callable[[RecognizerState, RecognizerState], None]


class WatsonSTTClient:
    """Client for Watson's streaming speech recognizer.

    Usage:
        client = WatsonSTTClient(WatsonSTTConfig.from_env())
        result = await client.recognize(wav_bytes, token)
        print(result.transcript)
    """

    def __init__(
        self,
        config: WatsonSTTConfig,
        clock: Optional[Clock] = None,
        on_state_change: Optional[StateCallback] = None,
    ):
        """Initialize the client.

        Args:
            config: Recognizer endpoint, parameters and timing
            clock: Clock used for the settle and stop delays
            on_state_change: Called with (from_state, to_state) on every transition
        """
        self.config = config
        self.clock = clock or DEFAULT_CLOCK
        self.on_state_change = on_state_change
        self.state = RecognizerState.IDLE
        self.history: list[RecognizerState] = []
        self.outcome = ""

    async def recognize(
        self,
        audio: bytes,
        token: str,
        strategy: TransportStrategy = QUERY_TOKEN,
    ) -> TranscriptionResult:
        """Run one recognition attempt.

        Args:
            audio: Complete WAV artifact
            token: IAM bearer token
            strategy: How to place the token and shape the handshake

        Returns:
            Final transcript and confidence

        Raises:
            ConnectTimeoutError: If the socket does not open in time
            WatsonConnectionError: If the socket cannot be opened
            RemoteError: If Watson reports an error
            NoSpeechDetectedError: If recognition ends without a transcript
            TranscriptionTimeoutError: If no result arrives within overall_timeout
            TransportError: If the socket closes before a result
        """
        self._reset()
        ws = await self._open(token, strategy)

        try:
            try:
                async with asyncio.timeout(self.config.overall_timeout):
                    message = await self._exchange(ws, audio, strategy)
            except TimeoutError as e:
                raise TranscriptionTimeoutError(
                    f"WebSocket timeout - no response in {self.config.overall_timeout:g}s"
                ) from e
        except VoiceError as e:
            self._finish(e.kind.value)
            raise
        finally:
            await self._close(ws)

        self._finish("success")
        logger.info(
            f"Watson transcript received via {strategy.name}",
            extra={"confidence": message.confidence, "chars": len(message.transcript)},
        )
        return TranscriptionResult(
            transcript=message.transcript,
            confidence=message.confidence,
            method=strategy.name,
        )

    async def probe(self, token: str, strategy: TransportStrategy = QUERY_TOKEN) -> int:
        """Open and immediately close a connection.

        Returns:
            Milliseconds taken to open the socket
        """
        self._reset()
        started = time.monotonic()
        ws = await self._open(token, strategy)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        await self._close(ws)
        self._finish("success")
        return elapsed_ms

    async def _open(self, token: str, strategy: TransportStrategy) -> ClientConnection:
        """Establish the WebSocket connection (CONNECTING)."""
        self._transition(RecognizerState.CONNECTING)

        url = get_watson_ws_url(
            self.config.url,
            access_token=strategy.url_token(token),
            model=self.config.params.model,
        )
        headers = strategy.handshake_headers(token)
        kwargs = {}
        user_agent = headers.pop("User-Agent", None)
        if user_agent:
            kwargs["user_agent_header"] = user_agent
        timeout = strategy.connect_timeout or self.config.connect_timeout

        logger.info(
            f"Connecting to Watson STT at {redact_url(url)}",
            extra={"strategy": strategy.name},
        )

        try:
            ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    additional_headers=headers or None,
                    open_timeout=timeout,
                    max_size=None,
                    **kwargs,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            self._finish("connect_timeout")
            raise ConnectTimeoutError(f"WebSocket connection timeout ({timeout:g}s)") from e
        except InvalidStatus as e:
            self._finish("connection")
            status = e.response.status_code
            raise WatsonConnectionError(
                f"WebSocket handshake rejected: HTTP {status}"
            ) from e
        except (OSError, WebSocketException) as e:
            self._finish("connection")
            raise WatsonConnectionError(
                f"WebSocket connection refused - likely network or authentication issue: {e}"
            ) from e

        logger.info("Connected to Watson STT")
        return ws

    async def _exchange(
        self,
        ws: ClientConnection,
        audio: bytes,
        strategy: TransportStrategy,
    ) -> WatsonMessage:
        """Send the payload while waiting for the final result."""
        stop_sent = asyncio.Event()
        receive_task = asyncio.create_task(self._receive_result(ws, stop_sent))
        send_task = asyncio.create_task(self._send_payload(ws, audio, strategy, stop_sent))

        try:
            done, _ = await asyncio.wait(
                {receive_task, send_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if receive_task in done:
                return receive_task.result()

            send_error = send_task.exception()
            if send_error is not None and not isinstance(send_error, websockets.ConnectionClosed):
                raise TransportError(f"Audio send failed: {send_error}") from send_error
            # Sender done (or the socket closed under it): the receiver decides
            return await receive_task
        finally:
            for task in (send_task, receive_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(send_task, receive_task, return_exceptions=True)

    async def _send_payload(
        self,
        ws: ClientConnection,
        audio: bytes,
        strategy: TransportStrategy,
        stop_sent: asyncio.Event,
    ) -> None:
        """NEGOTIATING -> STREAMING -> AWAITING_RESULT."""
        self._transition(RecognizerState.NEGOTIATING)
        await ws.send(build_start_frame(self.config.params))
        await self.clock.sleep(self.config.settle_delay)

        self._transition(RecognizerState.STREAMING)
        chunk_size = strategy.chunk_size or self.config.chunk_size
        frames = 0
        for offset in range(0, len(audio), chunk_size):
            await ws.send(audio[offset:offset + chunk_size])
            frames += 1
        logger.debug(f"Sent {len(audio)} audio bytes in {frames} frames")

        await self.clock.sleep(self.config.stop_delay)
        await ws.send(build_stop_frame())
        stop_sent.set()
        self._transition(RecognizerState.AWAITING_RESULT)

    async def _receive_result(
        self,
        ws: ClientConnection,
        stop_sent: asyncio.Event,
    ) -> WatsonMessage:
        """Read frames until a final transcript, an error, or the socket closes.

        Watson answers the start frame with "listening" and sends "listening"
        again once it has finished the utterance; the second one after the
        stop frame with no final transcript means nothing was recognized.
        """
        listening_seen = 0
        try:
            async for raw_message in ws:
                msg = parse_watson_message(raw_message)

                if msg.is_state:
                    logger.debug(f"Watson state: {msg.state}")
                    if msg.is_listening:
                        listening_seen += 1
                    if msg.is_listening and listening_seen > 1 and stop_sent.is_set():
                        raise NoSpeechDetectedError(
                            "Recognition finished without a transcript"
                        )
                    continue

                if msg.is_final_transcript:
                    return msg

                if msg.is_error:
                    logger.error(f"Watson error: {msg.error_message}")
                    raise RemoteError(f"Watson error: {msg.error_message}")

                if msg.type == WatsonMessageType.UNKNOWN:
                    logger.warning(f"Ignoring unrecognized Watson message: {msg.raw[:100]}")

        except websockets.ConnectionClosed as e:
            logger.info(f"Watson connection closed: {e}")

        code = ws.close_code
        reason = ws.close_reason or ""
        if code == WS_NORMAL_CLOSURE and stop_sent.is_set():
            raise NoSpeechDetectedError("Connection closed without a transcript")

        description = CLOSE_DESCRIPTIONS.get(code)
        if description:
            raise TransportError(f"{description} ({code})", code=code, reason=reason)
        raise TransportError(code=code, reason=reason)

    async def _close(self, ws: ClientConnection) -> None:
        try:
            await ws.close()
        except Exception as e:
            logger.debug(f"Error closing Watson socket: {e}")

    def _reset(self) -> None:
        self.state = RecognizerState.IDLE
        self.history = [RecognizerState.IDLE]
        self.outcome = ""

    def _finish(self, outcome: str) -> None:
        self.outcome = outcome
        self._transition(RecognizerState.CLOSED)

    def _transition(self, to_state: RecognizerState) -> None:
        from_state = self.state
        if from_state == to_state:
            return
        self.state = to_state
        self.history.append(to_state)
        logger.debug(f"Recognizer {from_state.value} -> {to_state.value}")
        if self.on_state_change:
            self.on_state_change(from_state, to_state)
