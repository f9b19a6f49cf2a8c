"""
Per-speaker voice resolution: clone upload, explicit preset, or provider default.
"""

import logging
import time
from collections.abc import Callable, Mapping

from .errors import ValidationError
from .models import SpeakerConfig

logger = logging.getLogger("voicedub")

DEFAULT_VOICES = {"openai": "alloy", "elevenlabs": "Rachel"}

# (name, sample bytes, sample filename) -> voice id
Cloner = Callable[[str, bytes, str], str]


def clone_voice_name(speaker: str, now: float | None = None) -> str:
    """Clone name from speaker id plus creation timestamp (epoch ms)."""
    ts = time.time() if now is None else now
    return f"Clone_{speaker}_{int(ts * 1000)}"


def resolve_voice(
    cfg: SpeakerConfig,
    cloner: Cloner | None = None,
    clock: Callable[[], float] = time.time,
) -> str:
    """Resolve one speaker's voice identifier.

    ``elevenlabs`` + ``clone`` uploads the sample and creates a new voice on
    every call; an explicit ``voice_id`` is used as-is; anything else falls
    back to the provider default.
    """
    if cfg.provider == "elevenlabs" and cfg.strategy == "clone":
        if not cfg.sample:
            raise ValidationError(f"missing sample for {cfg.speaker}")
        if cloner is None:
            raise ValidationError(f"voice cloning is not available for {cfg.speaker}")
        name = clone_voice_name(cfg.speaker, clock())
        return cloner(name, cfg.sample, cfg.sample_filename or f"{cfg.speaker}.wav")
    if cfg.voice_id:
        return cfg.voice_id
    return DEFAULT_VOICES[cfg.provider]


def resolve_voices(
    configs: Mapping[str, SpeakerConfig],
    cloner: Cloner | None = None,
    clock: Callable[[], float] = time.time,
) -> dict[str, str]:
    """Resolve every speaker exactly once, before any synthesis."""
    resolved: dict[str, str] = {}
    for speaker, cfg in configs.items():
        resolved[speaker] = resolve_voice(cfg, cloner=cloner, clock=clock)
        logger.info(
            f"Voice for {speaker}: {cfg.provider}/{cfg.strategy} -> {resolved[speaker]}"
        )
    return resolved
