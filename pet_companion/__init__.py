"""Voice, assistant and weather services for a virtual-pet companion."""

from .assistant import AssistantClient, AssistantReply
from .audio import AudioArtifact, Recorder, RecorderConfig, SoundDeviceMicrophone
from .credentials import IAMTokenProvider
from .livetypes import ErrorKind, TranscriptionResult, VoiceError
from .protocols import AssistantConfig, WatsonSTTConfig
from .transcription import FallbackTranscriber, SessionOutcome, VoiceSession
from .transport import WatsonSTTClient
from .weather import WeatherClient

__all__ = [
    "AssistantClient",
    "AssistantConfig",
    "AssistantReply",
    "AudioArtifact",
    "ErrorKind",
    "FallbackTranscriber",
    "IAMTokenProvider",
    "Recorder",
    "RecorderConfig",
    "SessionOutcome",
    "SoundDeviceMicrophone",
    "TranscriptionResult",
    "VoiceError",
    "VoiceSession",
    "WatsonSTTClient",
    "WatsonSTTConfig",
    "WeatherClient",
]
