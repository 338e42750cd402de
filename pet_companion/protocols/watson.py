"""Watson speech-to-text WebSocket protocol definitions.

Pure functions for:
- Building control frames
- Parsing recognizer messages
- Constructing and redacting connection URLs

No I/O, no state - just data transformations.
"""

import json
import os
from dataclasses import dataclass
from enum import Enum, auto
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..constants import (
    AUDIO_CHUNK_BYTES,
    CONNECT_TIMEOUT,
    OVERALL_TIMEOUT,
    SETTLE_DELAY,
    STOP_DELAY,
    WATSON_STT_APIKEY,
    WATSON_STT_MODEL,
    WATSON_STT_URL,
)


class WatsonMessageType(Enum):
    """Types of messages from the Watson recognizer."""

    STATE = auto()      # {"state": "listening"} status notification
    RESULT = auto()     # {"results": [...]} recognition result
    ERROR = auto()      # {"error": "..."} failure reported by the service
    UNKNOWN = auto()    # Anything else, including non-JSON payloads


@dataclass(frozen=True)
class WatsonMessage:
    """Parsed message from the Watson recognizer.

    Immutable data class representing a single inbound frame.
    """

    type: WatsonMessageType
    state: str = ""
    transcript: str = ""
    confidence: float = 0.0
    final: bool = False
    error_message: str = ""
    raw: str = ""

    @property
    def is_state(self) -> bool:
        return self.type == WatsonMessageType.STATE

    @property
    def is_listening(self) -> bool:
        return self.is_state and self.state == "listening"

    @property
    def is_result(self) -> bool:
        return self.type == WatsonMessageType.RESULT

    @property
    def is_error(self) -> bool:
        return self.type == WatsonMessageType.ERROR

    @property
    def is_final_transcript(self) -> bool:
        """True for a finalized alternative with non-empty text."""
        return self.is_result and self.final and bool(self.transcript.strip())


@dataclass(frozen=True)
class RecognitionParams:
    """Recognition parameters sent in the start control frame."""

    content_type: str = "audio/wav"
    model: str = WATSON_STT_MODEL
    continuous: bool = False
    interim_results: bool = False
    word_confidence: bool = True


@dataclass(frozen=True)
class WatsonSTTConfig:
    """Configuration for the Watson streaming recognizer.

    Immutable - create a new instance (dataclasses.replace) to change values.
    Delays are empirically tuned for the remote service, not protocol
    requirements, so they are configurable.
    """

    api_key: str
    url: str = WATSON_STT_URL
    params: RecognitionParams = RecognitionParams()
    settle_delay: float = SETTLE_DELAY
    stop_delay: float = STOP_DELAY
    connect_timeout: float = CONNECT_TIMEOUT
    overall_timeout: float = OVERALL_TIMEOUT
    chunk_size: int = AUDIO_CHUNK_BYTES

    @classmethod
    def from_env(cls) -> "WatsonSTTConfig":
        """Create config from environment variables."""
        return cls(
            api_key=os.getenv("WATSON_STT_APIKEY", WATSON_STT_APIKEY),
            url=os.getenv("WATSON_STT_URL", WATSON_STT_URL),
            params=RecognitionParams(
                model=os.getenv("WATSON_STT_MODEL", WATSON_STT_MODEL),
            ),
        )

    def is_configured(self) -> bool:
        """Check if the API key and endpoint are set."""
        return bool(self.api_key and self.url)


def build_start_frame(params: RecognitionParams) -> str:
    """Serialize the start control frame.

    Examples:
        >>> build_start_frame(RecognitionParams())
        '{"action": "start", "content-type": "audio/wav", ...}'
    """
    return json.dumps(
        {
            "action": "start",
            "content-type": params.content_type,
            "continuous": params.continuous,
            "interim_results": params.interim_results,
            "word_confidence": params.word_confidence,
            "model": params.model,
        }
    )


def build_stop_frame() -> str:
    """Serialize the end-of-audio control frame."""
    return json.dumps({"action": "stop"})


def get_watson_ws_url(
    base_url: str,
    access_token: str | None = None,
    model: str | None = None,
) -> str:
    """Construct the recognizer WebSocket URL.

    Args:
        base_url: wss:// endpoint ending in /v1/recognize
        access_token: Bearer token to embed as a query parameter
        model: Recognition model to select

    Returns:
        URL with query parameters merged into any existing ones
    """
    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query))
    if model:
        query["model"] = model
    if access_token:
        query["access_token"] = access_token
    return urlunsplit(parts._replace(query=urlencode(query)))


def redact_url(url: str) -> str:
    """Mask the access_token query value for logging."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (key, "***" if key == "access_token" else value)
        for key, value in parse_qsl(parts.query)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


def _as_confidence(value) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0


def parse_watson_message(raw_message: str | bytes) -> WatsonMessage:
    """Parse a raw frame from the Watson recognizer.

    Pure function - no side effects.

    Args:
        raw_message: Raw JSON text (or bytes) from the WebSocket

    Returns:
        Parsed WatsonMessage

    Examples:
        >>> parse_watson_message('{"state": "listening"}')
        WatsonMessage(type=WatsonMessageType.STATE, state='listening', ...)

        >>> parse_watson_message('{"error": "No speech"}')
        WatsonMessage(type=WatsonMessageType.ERROR, error_message='No speech', ...)
    """
    if isinstance(raw_message, bytes):
        raw_message = raw_message.decode("utf-8", errors="replace")

    try:
        data = json.loads(raw_message)
    except json.JSONDecodeError:
        return WatsonMessage(type=WatsonMessageType.UNKNOWN, raw=raw_message)

    if not isinstance(data, dict):
        return WatsonMessage(type=WatsonMessageType.UNKNOWN, raw=raw_message)

    if "state" in data:
        return WatsonMessage(
            type=WatsonMessageType.STATE,
            state=str(data.get("state", "")),
            raw=raw_message,
        )

    results = data.get("results")
    if isinstance(results, list) and results:
        result = results[0] if isinstance(results[0], dict) else {}
        alternatives = result.get("alternatives")
        if not isinstance(alternatives, list):
            alternatives = []
        best = alternatives[0] if alternatives and isinstance(alternatives[0], dict) else {}
        transcript = best.get("transcript")
        return WatsonMessage(
            type=WatsonMessageType.RESULT,
            transcript=transcript.strip() if isinstance(transcript, str) else "",
            confidence=_as_confidence(best.get("confidence")),
            final=result.get("final") is True,
            raw=raw_message,
        )

    if "error" in data:
        return WatsonMessage(
            type=WatsonMessageType.ERROR,
            error_message=str(data.get("error") or "Unknown error"),
            raw=raw_message,
        )

    return WatsonMessage(type=WatsonMessageType.UNKNOWN, raw=raw_message)
