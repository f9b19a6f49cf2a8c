"""
Data models for the dubbing pipeline.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Literal

from .errors import ValidationError

Strategy = Literal["clone", "preset"]
Provider = Literal["openai", "elevenlabs"]

PROVIDERS: tuple[str, ...] = ("openai", "elevenlabs")
STRATEGIES: tuple[str, ...] = ("clone", "preset")


@dataclass(frozen=True)
class Segment:
    """A time-bounded, speaker-attributed unit of transcript text."""

    start: float  # seconds
    end: float  # seconds
    text: str
    speaker: str = "S0"


@dataclass
class SpeakerConfig:
    """How one speaker label gets its voice."""

    speaker: str
    strategy: Strategy = "preset"
    provider: Provider = "openai"
    voice_id: str | None = None
    sample: bytes | None = field(default=None, repr=False)
    sample_filename: str | None = None

    def __post_init__(self) -> None:
        if self.provider not in PROVIDERS:
            raise ValidationError(f"Unknown TTS provider for {self.speaker}: {self.provider}")
        if self.strategy not in STRATEGIES:
            raise ValidationError(f"Unknown voice strategy for {self.speaker}: {self.strategy}")


@dataclass
class TranscriptionResult:
    """Segments extracted from a finished transcription job."""

    language: str
    segments: list[Segment]


@dataclass
class Translation:
    """Translated segments, index-aligned with the source segments.

    ``degraded`` is set when the provider response could not be aligned and
    the original text was carried through instead.
    """

    language: str
    segments: list[Segment]
    degraded: bool = False


@dataclass
class SynthesizedPart:
    """One synthesized clip anchored at its segment's start offset."""

    filename: str
    audio: bytes = field(repr=False)
    start: float


def distinct_speakers(segments: Iterable[Segment]) -> list[str]:
    """Speaker labels in order of first appearance."""
    seen: dict[str, None] = {}
    for seg in segments:
        seen.setdefault(seg.speaker, None)
    return list(seen)


def default_speaker_config(speaker: str) -> SpeakerConfig:
    return SpeakerConfig(speaker=speaker, strategy="preset", provider="openai", voice_id="alloy")


def merge_speaker_configs(
    segments: Iterable[Segment], configs: Iterable[SpeakerConfig] = ()
) -> dict[str, SpeakerConfig]:
    """One config per observed speaker: user-supplied where given, default otherwise."""
    given = {c.speaker: c for c in configs}
    return {
        spk: given.get(spk) or default_speaker_config(spk) for spk in distinct_speakers(segments)
    }


def freeze_speaker_configs(
    configs: Mapping[str, SpeakerConfig], segments: Iterable[Segment]
) -> Mapping[str, SpeakerConfig]:
    """Check every segment speaker has a config and return a read-only view."""
    missing = [spk for spk in distinct_speakers(segments) if spk not in configs]
    if missing:
        raise ValidationError(f"No voice configured for speaker(s): {', '.join(missing)}")
    return MappingProxyType(dict(configs))


def segments_to_dicts(segments: Iterable[Segment]) -> list[dict]:
    return [
        {"start": s.start, "end": s.end, "text": s.text, "speaker": s.speaker} for s in segments
    ]


def segments_from_dicts(items: Iterable[Mapping]) -> list[Segment]:
    """Load segments from JSON-style dicts (fields: start, end, text, speaker)."""
    out: list[Segment] = []
    for idx, item in enumerate(items):
        start, end = float(item["start"]), float(item["end"])
        if end <= start:
            raise ValidationError(f"Segment {idx} ends before it starts ({start} -> {end})")
        out.append(
            Segment(
                start=start,
                end=end,
                text=str(item.get("text", "")).strip(),
                speaker=str(item.get("speaker") or "S0"),
            )
        )
    return out
