"""
Credential lookup and pipeline settings.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from .errors import ConfigurationError

logger = logging.getLogger("voicedub")


class KeyName(str, Enum):
    """Secrets the provider clients need."""

    OPENAI = "OPENAI_API_KEY"
    ASSEMBLYAI = "ASSEMBLYAI_API_KEY"
    ELEVENLABS = "ELEVENLABS_API_KEY"


# Header names a web front end would use to forward per-request keys.
OVERRIDE_HEADERS = {
    KeyName.OPENAI: "x-openai-key",
    KeyName.ASSEMBLYAI: "x-assemblyai-key",
    KeyName.ELEVENLABS: "x-elevenlabs-key",
}


def get_key(name: KeyName, overrides: Mapping[str, str] | None = None) -> str | None:
    """Resolve a secret from the environment first, then from per-request overrides.

    ``overrides`` may be keyed by the environment variable name or by the
    matching header name from ``OVERRIDE_HEADERS``.
    """
    env = os.getenv(name.value)
    if env and env.strip():
        return env.strip()
    if not overrides:
        return None
    for candidate in (name.value, OVERRIDE_HEADERS[name]):
        val = overrides.get(candidate)
        if val and val.strip():
            return val.strip()
    return None


def require_key(name: KeyName, overrides: Mapping[str, str] | None = None) -> str:
    """Like get_key() but raise ConfigurationError when the secret is absent."""
    key = get_key(name, overrides)
    if not key:
        raise ConfigurationError(f"{name.value} is not set. Put it in .env or environment.")
    return key


@dataclass
class PipelineSettings:
    """Models, timing and mix constants for one pipeline run."""

    translation_model: str = "gpt-4o-mini"
    tts_model: str = "gpt-4o-mini-tts"
    tts_instructions: str | None = None
    elevenlabs_model_id: str = "eleven_multilingual_v2"

    # transcription polling
    poll_interval_s: float = 2.0
    poll_max_attempts: int = 300
    poll_timeout_s: float | None = None
    word_group_secs: float = 5.0

    # audio formats
    extract_sample_rate: int = 44100
    mix_sample_rate: int = 44100
    mix_channels: int = 2

    # ducking (sidechaincompress)
    duck_threshold: float = 0.05
    duck_ratio: float = 8
    duck_attack_ms: float = 5
    duck_release_ms: float = 250

    max_concurrent: int = 1

    @classmethod
    def from_env(cls, **overrides) -> "PipelineSettings":
        """Build settings from VOICEDUB_* environment variables plus explicit overrides."""
        settings = cls(
            translation_model=os.getenv("VOICEDUB_TRANSLATION_MODEL", cls.translation_model),
            tts_model=os.getenv("VOICEDUB_TTS_MODEL", cls.tts_model),
            tts_instructions=os.getenv("OPENAI_TTS_INSTRUCTIONS") or None,
            elevenlabs_model_id=os.getenv("VOICEDUB_ELEVENLABS_MODEL_ID", cls.elevenlabs_model_id),
        )
        for field_name, value in overrides.items():
            if value is None:
                continue
            if not hasattr(settings, field_name):
                raise ValueError(f"Unknown setting: {field_name}")
            setattr(settings, field_name, value)
        logger.debug("Pipeline settings: %s", settings)
        return settings
