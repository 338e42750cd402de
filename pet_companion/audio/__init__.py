"""Audio capture and pure processing functions."""

from .processing import (
    AudioFormat,
    float32_to_int16,
    load_wav_file,
    pcm_duration_ms,
    pcm_to_wav,
    prepare_wav_for_watson,
    resample,
    stereo_to_mono,
)
from .recorder import (
    AudioArtifact,
    MicrophoneBackend,
    Recorder,
    RecorderConfig,
    RecordingSession,
    RecordingStatus,
    SoundDeviceMicrophone,
)

__all__ = [
    "AudioFormat",
    "float32_to_int16",
    "load_wav_file",
    "pcm_duration_ms",
    "pcm_to_wav",
    "prepare_wav_for_watson",
    "resample",
    "stereo_to_mono",
    "AudioArtifact",
    "MicrophoneBackend",
    "Recorder",
    "RecorderConfig",
    "RecordingSession",
    "RecordingStatus",
    "SoundDeviceMicrophone",
]
