"""
Transcribe a WAV file through the full pipeline: IAM token, transport
fallback chain, Watson STT WebSocket.

Requirements:
  - Watson credentials: WATSON_STT_APIKEY (and optionally WATSON_STT_URL)
  - Package installed (pip install -e .)

Usage:
  python tools/transcribe_wav.py --audio sample.wav
  python tools/transcribe_wav.py --audio sample.wav --probe
"""

import argparse
import dataclasses
import asyncio
import sys
from pathlib import Path

from pet_companion.audio import AudioArtifact, AudioFormat, prepare_wav_for_watson
from pet_companion.audio.processing import pcm_duration_ms
from pet_companion.credentials import IAMTokenProvider
from pet_companion.diagnostics import advice_for, probe_connection, summarize_attempts
from pet_companion.livetypes import VoiceError
from pet_companion.logging_setup import configure_logging
from pet_companion.protocols.watson import WatsonSTTConfig
from pet_companion.transcription import FallbackTranscriber
from pet_companion.transport import DEFAULT_STRATEGIES, WatsonSTTClient

WAV_HEADER_BYTES = 44


async def transcribe(audio_path: Path, config: WatsonSTTConfig, probe: bool) -> int:
    wav = prepare_wav_for_watson(audio_path)
    fmt = AudioFormat.WATSON_PCM16
    artifact = AudioArtifact(
        data=wav,
        audio_format=fmt,
        duration_ms=pcm_duration_ms(len(wav) - WAV_HEADER_BYTES, fmt),
    )
    print(f"[audio] {artifact.size} bytes, {artifact.duration_ms / 1000:.1f}s")

    client = WatsonSTTClient(config)
    async with IAMTokenProvider(config.api_key) as tokens:
        if probe:
            for strategy in DEFAULT_STRATEGIES:
                report = await probe_connection(tokens, client, strategy)
                print(report.summary())
                if not report.ok:
                    print(f"[advice] {report.advice}")

        transcriber = FallbackTranscriber(client, tokens)
        try:
            result = await transcriber.transcribe(artifact)
        except VoiceError as e:
            print(summarize_attempts(transcriber.last_attempts))
            print(f"[error] {e}", file=sys.stderr)
            print(f"[advice] {advice_for(e.kind)}", file=sys.stderr)
            return 1

    print(summarize_attempts(transcriber.last_attempts))
    print(f"[transcript] {result.transcript}")
    print(f"[confidence] {result.confidence_percent}% via {result.method}")
    return 0


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Transcribe a WAV file with Watson STT.")
    parser.add_argument("--audio", required=True, help="Path to a WAV file (any rate, 16-bit or float).")
    parser.add_argument("--model", help="Override WATSON_STT_MODEL.")
    parser.add_argument("--probe", action="store_true", help="Run a connection check per strategy first.")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level.")
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "INFO")

    config = WatsonSTTConfig.from_env()
    if args.model:
        config = dataclasses.replace(config, params=dataclasses.replace(config.params, model=args.model))
    if not config.is_configured():
        print("Missing Watson credentials (WATSON_STT_APIKEY)", file=sys.stderr)
        return 1
    return asyncio.run(transcribe(Path(args.audio), config, args.probe))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
