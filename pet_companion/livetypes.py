"""Pydantic models, shared types and exceptions for the pet companion services."""

import dataclasses
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence

from pydantic import BaseModel, Field


# Wire models

class IAMTokenResponse(BaseModel):
    """Token payload returned by the IBM Cloud IAM identity endpoint."""

    access_token: str = Field(..., min_length=1)
    expires_in: Optional[int] = None
    token_type: str = "Bearer"
    expiration: Optional[int] = None


class ChatMessage(BaseModel):
    """A single message sent to the assistant deployment."""

    content: str = Field(..., min_length=1)
    role: str = "user"


class ChatRequest(BaseModel):
    """Request body for the assistant deployment's ai_service endpoint."""

    messages: list[ChatMessage]


class WeatherDescValue(BaseModel):
    value: str = ""


class CurrentCondition(BaseModel):
    """Subset of wttr.in's current_condition entry."""

    temp_C: int
    humidity: int
    windspeedKmph: float
    weatherDesc: list[WeatherDescValue]


class NearestArea(BaseModel):
    """Subset of wttr.in's nearest_area entry."""

    areaName: list[WeatherDescValue]
    country: list[WeatherDescValue]


class WttrResponse(BaseModel):
    """wttr.in ``format=j1`` response."""

    current_condition: list[CurrentCondition] = Field(..., min_length=1)
    nearest_area: list[NearestArea] = Field(..., min_length=1)


class WeatherData(BaseModel):
    """Normalized weather reading for the weather card."""

    temperature: int
    condition: str
    description: str
    city: str
    country: str
    humidity: int
    wind_speed: float = Field(..., description="Wind speed in m/s")
    icon: str


# Results

@dataclasses.dataclass(frozen=True)
class TranscriptionResult:
    """Final transcript for one recorded audio artifact."""

    transcript: str
    confidence: float = 0.0
    timestamp: datetime = dataclasses.field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    method: str = ""

    def __post_init__(self):
        clamped = min(max(float(self.confidence or 0.0), 0.0), 1.0)
        object.__setattr__(self, "confidence", clamped)

    @property
    def confidence_percent(self) -> int:
        return round(self.confidence * 100)


@dataclasses.dataclass(frozen=True)
class TransportAttempt:
    """Diagnostic record of one transport strategy try."""

    method: str
    elapsed_ms: int
    outcome: str
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome == "success"


# Errors

class ErrorKind(str, Enum):
    """Machine-readable failure kinds."""

    PERMISSION_DENIED = "permission_denied"
    ALREADY_ACTIVE = "already_active"
    AUTH = "auth"
    CONNECTION = "connection"
    CONNECT_TIMEOUT = "connect_timeout"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    REMOTE = "remote"
    TOO_LARGE = "too_large"
    NO_SPEECH = "no_speech"
    PARSE = "parse"
    EXHAUSTED = "exhausted"


class VoiceError(Exception):
    """Base exception for voice, assistant and credential failures."""

    kind: ErrorKind = ErrorKind.TRANSPORT
    retryable: bool = False


class PermissionDeniedError(VoiceError):
    """Microphone access was not granted."""

    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, message: str = "Microphone permission required"):
        super().__init__(message)


class AlreadyActiveError(VoiceError):
    """A recording or transcription is already running."""

    kind = ErrorKind.ALREADY_ACTIVE

    def __init__(self, message: str = "A recording session is already active"):
        super().__init__(message)


class AuthError(VoiceError):
    """Credential exchange or bearer authorization was rejected."""

    kind = ErrorKind.AUTH

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class WatsonConnectionError(VoiceError):
    """The remote endpoint could not be reached or refused the connection."""

    kind = ErrorKind.CONNECTION
    retryable = True


class ConnectTimeoutError(WatsonConnectionError):
    """The connection did not open within the connect timeout."""

    kind = ErrorKind.CONNECT_TIMEOUT


class TransportError(VoiceError):
    """The streaming connection closed before a result was produced."""

    kind = ErrorKind.TRANSPORT
    retryable = True

    def __init__(
        self,
        message: str = "",
        code: Optional[int] = None,
        reason: str = "",
    ):
        if not message:
            message = f"WebSocket closed: {code} - {reason or 'Unknown'}"
        super().__init__(message)
        self.code = code
        self.reason = reason


class TranscriptionTimeoutError(TransportError):
    """No result arrived within the overall operation timeout."""

    kind = ErrorKind.TIMEOUT


class RemoteError(VoiceError):
    """The remote service reported an explicit error."""

    kind = ErrorKind.REMOTE
    retryable = True

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TooLargeError(VoiceError):
    """The audio artifact exceeds the upload ceiling."""

    kind = ErrorKind.TOO_LARGE

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"File too large: {size / 1024 / 1024:.1f}MB "
            f"(Max: {limit / 1024 / 1024:.0f}MB)"
        )
        self.size = size
        self.limit = limit


class NoSpeechDetectedError(VoiceError):
    """The recognizer finished without a non-empty transcript."""

    kind = ErrorKind.NO_SPEECH

    def __init__(self, message: str = "No speech detected"):
        super().__init__(message)


class ParseError(VoiceError):
    """A response could not be interpreted."""

    kind = ErrorKind.PARSE


class StrategiesExhaustedError(VoiceError):
    """Every transport strategy in the fallback chain failed."""

    kind = ErrorKind.EXHAUSTED

    def __init__(self, attempts: Sequence[TransportAttempt]):
        self.attempts = tuple(attempts)
        last = self.attempts[-1].message if self.attempts else "no strategies configured"
        super().__init__(
            f"All {len(self.attempts)} transport strategies failed; last error: {last}"
        )

    @property
    def last_error(self) -> str:
        return self.attempts[-1].message if self.attempts else ""


class WeatherError(Exception):
    """Weather data could not be fetched or parsed."""

    pass
