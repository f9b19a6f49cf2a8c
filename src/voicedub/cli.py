"""
Command-line interface for the dubbing pipeline.
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import KeyName, PipelineSettings
from .errors import DubbingError
from .models import PROVIDERS, STRATEGIES, SpeakerConfig, distinct_speakers
from .pipeline import dub_video, load_segments_json, prepare_transcript

logger = logging.getLogger("voicedub")


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    # keep the HTTP client quiet unless debugging
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def parse_speaker(text: str) -> SpeakerConfig:
    """Parse ``SPEAKER=PROVIDER[:STRATEGY[:VALUE]]``.

    VALUE is a voice id/name for ``preset`` and a sample file path for ``clone``:
    ``S0=openai:preset:verse``, ``SA=elevenlabs:clone:alice.wav``,
    ``SB=elevenlabs``.
    """
    speaker, sep, rest = text.partition("=")
    if not sep or not speaker.strip() or not rest:
        raise argparse.ArgumentTypeError(
            f"expected SPEAKER=PROVIDER[:STRATEGY[:VALUE]], got {text!r}"
        )
    provider, _, rest = rest.partition(":")
    strategy, _, value = rest.partition(":")
    strategy = strategy or "preset"
    if provider not in PROVIDERS:
        raise argparse.ArgumentTypeError(f"unknown provider {provider!r}")
    if strategy not in STRATEGIES:
        raise argparse.ArgumentTypeError(f"unknown strategy {strategy!r}")

    if strategy == "clone":
        if not value:
            raise argparse.ArgumentTypeError(f"clone for {speaker} needs a sample file path")
        sample_path = Path(value)
        if not sample_path.is_file():
            raise argparse.ArgumentTypeError(f"voice sample not found: {value}")
        return SpeakerConfig(
            speaker=speaker.strip(),
            strategy="clone",
            provider=provider,
            sample=sample_path.read_bytes(),
            sample_filename=sample_path.name,
        )
    return SpeakerConfig(
        speaker=speaker.strip(), strategy="preset", provider=provider, voice_id=value or None
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Multi-speaker video dubbing pipeline")

    # Phase control
    ap.add_argument(
        "--stage",
        choices=["prep", "dub"],
        default="dub",
        help="prep: extract+transcribe, write segments.json and subs.orig.srt; dub: full pipeline",
    )

    # IO
    ap.add_argument("--input_video", required=True)
    ap.add_argument("--workdir", default=".work")
    ap.add_argument("--output", default="output_dubbed.mp4")
    ap.add_argument(
        "--segments-json",
        default=None,
        help="Use segments from JSON (skip STT). Fields: start,end,text,speaker",
    )

    # Translation
    ap.add_argument("--target", default="hi", help="Target language code (e.g. hi, bn, en)")
    ap.add_argument("--translation-model", default=None)

    # Voices
    ap.add_argument(
        "--speaker",
        action="append",
        type=parse_speaker,
        default=[],
        metavar="SPK=PROVIDER[:STRATEGY[:VALUE]]",
        help="Voice for one speaker label, repeatable (default: openai preset 'alloy')",
    )
    ap.add_argument("--tts-model", default=None, help="OpenAI TTS model")
    ap.add_argument(
        "--voice-instructions",
        default=None,
        help="Optional TTS style instructions for OpenAI (not read aloud)",
    )
    ap.add_argument("--elevenlabs-model-id", default=None)
    ap.add_argument("--max-concurrent", type=int, default=1, help="Max concurrent TTS requests")

    # Transcription polling
    ap.add_argument("--poll-interval", type=float, default=None, help="Seconds between polls")
    ap.add_argument("--poll-timeout", type=float, default=None, help="Wall-clock polling ceiling")

    # Per-run credential overrides (environment wins)
    ap.add_argument("--openai-key", default=None)
    ap.add_argument("--assemblyai-key", default=None)
    ap.add_argument("--elevenlabs-key", default=None)

    # Logging
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def _key_overrides(args: argparse.Namespace) -> dict[str, str]:
    pairs = {
        KeyName.OPENAI.value: args.openai_key,
        KeyName.ASSEMBLYAI.value: args.assemblyai_key,
        KeyName.ELEVENLABS.value: args.elevenlabs_key,
    }
    return {k: v for k, v in pairs.items() if v}


def run_cli(args: argparse.Namespace) -> None:
    settings = PipelineSettings.from_env(
        translation_model=args.translation_model,
        tts_model=args.tts_model,
        tts_instructions=args.voice_instructions,
        elevenlabs_model_id=args.elevenlabs_model_id,
        max_concurrent=args.max_concurrent,
        poll_interval_s=args.poll_interval,
        poll_timeout_s=args.poll_timeout,
    )
    overrides = _key_overrides(args)

    if args.stage == "prep":
        transcript, segments_json, _srt = prepare_transcript(
            args.input_video, args.workdir, settings=settings, key_overrides=overrides
        )
        speakers = distinct_speakers(transcript.segments)
        logger.info(
            f"Stage 'prep' complete: {len(transcript.segments)} segments, "
            f"speakers: {', '.join(speakers) or 'none'}. "
            f"Review {segments_json}, then run stage 'dub' with --segments-json."
        )
        return

    segments = load_segments_json(args.segments_json) if args.segments_json else None
    if segments is not None:
        logger.info(f"Loaded segments -> {args.segments_json} ({len(segments)} segments)")

    result = dub_video(
        args.input_video,
        args.output,
        args.target,
        args.speaker,
        settings=settings,
        key_overrides=overrides,
        segments=segments,
    )
    if result.translation_degraded:
        logger.warning("Translation was not aligned; the dub uses the original text")
    for path in (result.original_srt_path, result.target_srt_path):
        if path:
            logger.info(f"Saved SRT -> {path}")


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    project_root = Path(__file__).parent.parent.parent
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        run_cli(args)
    except DubbingError as e:
        logger.error(f"{e.status_class} ({e.status_code}): {e}")
        return e.exit_code
    return 0


if __name__ == "__main__":
    sys.exit(main())
