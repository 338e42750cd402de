"""Live tests against IBM Cloud.

Skipped unless WATSON_STT_APIKEY is set. Set PET_SAMPLE_WAV to a WAV file
with speech (and optionally a sibling .txt with the expected words) to run
the transcription check.
"""

import os
import re
from pathlib import Path

import numpy as np
import pytest

from pet_companion.audio import AudioArtifact, AudioFormat, pcm_to_wav, prepare_wav_for_watson
from pet_companion.audio.processing import pcm_duration_ms
from pet_companion.credentials import IAMTokenProvider
from pet_companion.diagnostics import probe_connection
from pet_companion.livetypes import NoSpeechDetectedError
from pet_companion.protocols.watson import WatsonSTTConfig
from pet_companion.transcription import FallbackTranscriber
from pet_companion.transport import WatsonSTTClient

WATSON_STT_APIKEY = os.getenv("WATSON_STT_APIKEY", "")
SAMPLE_WAV = os.getenv("PET_SAMPLE_WAV", "")

pytestmark = [
    pytest.mark.live,
    pytest.mark.skipif(not WATSON_STT_APIKEY, reason="Watson credentials not configured"),
]


def normalize(text: str) -> set[str]:
    text = re.sub(r"[^\w\s]", "", text.lower())
    return set(text.split())


class TestWatsonLive:
    """Integration tests with the real Watson services."""

    @pytest.mark.asyncio
    async def test_probe(self):
        """Test token exchange and socket open succeed."""
        config = WatsonSTTConfig.from_env()
        async with IAMTokenProvider(config.api_key) as tokens:
            report = await probe_connection(tokens, WatsonSTTClient(config))

        print(f"\n{report.summary()}")
        assert report.ok, report.advice

    @pytest.mark.asyncio
    async def test_silence_is_no_speech(self):
        """Test one second of silence yields no transcript."""
        config = WatsonSTTConfig.from_env()
        fmt = AudioFormat.WATSON_PCM16
        pcm = np.zeros(fmt.sample_rate, dtype=np.int16).tobytes()
        artifact = AudioArtifact(pcm_to_wav(pcm, fmt), fmt, pcm_duration_ms(len(pcm), fmt))

        async with IAMTokenProvider(config.api_key) as tokens:
            chain = FallbackTranscriber(WatsonSTTClient(config), tokens)
            with pytest.raises(NoSpeechDetectedError):
                await chain.transcribe(artifact)

    @pytest.mark.asyncio
    async def test_transcribe_sample(self):
        """Test a speech sample is transcribed."""
        if not SAMPLE_WAV or not Path(SAMPLE_WAV).exists():
            pytest.skip("PET_SAMPLE_WAV not available")

        config = WatsonSTTConfig.from_env()
        wav = prepare_wav_for_watson(SAMPLE_WAV)
        fmt = AudioFormat.WATSON_PCM16
        artifact = AudioArtifact(wav, fmt, pcm_duration_ms(len(wav) - 44, fmt))

        async with IAMTokenProvider(config.api_key) as tokens:
            result = await FallbackTranscriber(WatsonSTTClient(config), tokens).transcribe(artifact)

        print(f"\nTranscript: {result.transcript} ({result.confidence_percent}%)")
        assert result.transcript

        expected_path = Path(SAMPLE_WAV).with_suffix(".txt")
        if expected_path.exists():
            expected = normalize(expected_path.read_text())
            overlap = len(expected & normalize(result.transcript)) / max(len(expected), 1)
            assert overlap > 0.5
