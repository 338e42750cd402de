"""Pure audio processing functions.

All functions in this module are pure (no side effects, no device I/O).
They can be tested in isolation without mocking anything.
"""

import io
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import numpy as np

from ..constants import CHANNELS, SAMPLE_RATE, SAMPLE_WIDTH


@dataclass(frozen=True)
class AudioFormat:
    """Immutable PCM audio format."""

    sample_rate: int
    channels: int
    sample_width: int = 2

    # Common formats
    WATSON_PCM16 = None  # Forward reference, set below

    @property
    def bytes_per_second(self) -> int:
        return self.sample_rate * self.channels * self.sample_width


# Set class attributes after class definition
AudioFormat.WATSON_PCM16 = AudioFormat(
    sample_rate=SAMPLE_RATE, channels=CHANNELS, sample_width=SAMPLE_WIDTH
)


def stereo_to_mono(audio: np.ndarray) -> np.ndarray:
    """Convert stereo interleaved audio to mono by averaging channels.

    Args:
        audio: Interleaved stereo audio as int16 array [L, R, L, R, ...]

    Returns:
        Mono audio as int16 array

    Raises:
        ValueError: If audio has odd number of samples (not valid stereo)
    """
    if len(audio) == 0:
        return audio

    if len(audio) % 2 != 0:
        raise ValueError(
            f"Stereo audio must have even number of samples, got {len(audio)}"
        )

    stereo_pairs = audio.reshape(-1, 2)
    return stereo_pairs.mean(axis=1).astype(audio.dtype)


def resample(audio: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Resample audio from source rate to target rate.

    Used when the input device cannot capture at 16kHz natively.

    Args:
        audio: Input audio as numpy array (int16 or float32)
        source_rate: Source sample rate in Hz
        target_rate: Target sample rate in Hz

    Returns:
        Resampled audio (same dtype as input)

    Raises:
        ValueError: If rates are invalid
    """
    if source_rate <= 0 or target_rate <= 0:
        raise ValueError(f"Sample rates must be positive, got {source_rate}, {target_rate}")

    if source_rate == target_rate or len(audio) == 0:
        return audio

    from scipy import signal

    original_dtype = audio.dtype
    num_samples = int(len(audio) * target_rate / source_rate)
    resampled = signal.resample(audio, num_samples)

    if original_dtype == np.int16:
        return np.clip(resampled, -32768, 32767).astype(np.int16)
    return resampled.astype(original_dtype)


def float32_to_int16(audio: np.ndarray) -> np.ndarray:
    """Convert float32 normalized audio back to int16.

    Used for float WAV files. Values outside [-1.0, 1.0] are clipped.
    """
    scaled = audio * 32768.0
    clipped = np.clip(scaled, -32768, 32767)
    return clipped.astype(np.int16)


def pcm_to_wav(pcm: bytes, audio_format: AudioFormat = AudioFormat.WATSON_PCM16) -> bytes:
    """Wrap raw PCM bytes in an in-memory RIFF/WAV container.

    Args:
        pcm: Little-endian PCM samples
        audio_format: Format the samples were captured in

    Returns:
        Complete WAV file bytes (44-byte header + samples)
    """
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(audio_format.channels)
        wf.setsampwidth(audio_format.sample_width)
        wf.setframerate(audio_format.sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()


def pcm_duration_ms(num_bytes: int, audio_format: AudioFormat = AudioFormat.WATSON_PCM16) -> int:
    """Duration in milliseconds of `num_bytes` of PCM in `audio_format`."""
    if num_bytes <= 0:
        return 0
    return int(num_bytes * 1000 / audio_format.bytes_per_second)


def load_wav_file(path: Path | str) -> Tuple[np.ndarray, int]:
    """Load a WAV file and return audio data with sample rate.

    Args:
        path: Path to WAV file

    Returns:
        Tuple of (audio_data as int16 or float32, sample_rate)

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file is not a valid WAV
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"WAV file not found: {path}")

    with wave.open(str(path), "rb") as wav:
        sample_rate = wav.getframerate()
        n_channels = wav.getnchannels()
        sample_width = wav.getsampwidth()
        raw_data = wav.readframes(wav.getnframes())

    if sample_width == 2:
        audio = np.frombuffer(raw_data, dtype=np.int16)
    elif sample_width == 4:
        audio = np.frombuffer(raw_data, dtype=np.float32)
    else:
        raise ValueError(f"Unsupported sample width: {sample_width} bytes")

    if n_channels == 2:
        audio = stereo_to_mono(audio)

    return audio, sample_rate


def prepare_wav_for_watson(path: Path | str) -> bytes:
    """Load any 16-bit/float WAV and re-encode it as 16kHz mono PCM16 WAV."""
    audio, sample_rate = load_wav_file(path)
    target = AudioFormat.WATSON_PCM16
    if audio.dtype == np.float32:
        audio = float32_to_int16(audio)
    audio = resample(audio, sample_rate, target.sample_rate)
    return pcm_to_wav(audio.astype("<i2").tobytes(), target)
