"""
Tests for credential lookup and settings.
"""

import pytest

from voicedub.config import KeyName, PipelineSettings, get_key, require_key
from voicedub.errors import ConfigurationError


def test_environment_wins_over_overrides(monkeypatch, no_env_keys):
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    assert get_key(KeyName.OPENAI, {"OPENAI_API_KEY": "from-request"}) == "from-env"


def test_overrides_by_env_or_header_name(no_env_keys):
    assert get_key(KeyName.ASSEMBLYAI, {"ASSEMBLYAI_API_KEY": " aai "}) == "aai"
    assert get_key(KeyName.ELEVENLABS, {"x-elevenlabs-key": "el"}) == "el"


def test_blank_values_count_as_missing(monkeypatch, no_env_keys):
    monkeypatch.setenv("OPENAI_API_KEY", "   ")
    assert get_key(KeyName.OPENAI, {"x-openai-key": ""}) is None


def test_require_key_names_the_variable(no_env_keys):
    with pytest.raises(ConfigurationError, match="ELEVENLABS_API_KEY") as exc:
        require_key(KeyName.ELEVENLABS)
    assert exc.value.exit_code == 3


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("VOICEDUB_TTS_MODEL", "tts-1-hd")
    monkeypatch.delenv("OPENAI_TTS_INSTRUCTIONS", raising=False)

    settings = PipelineSettings.from_env(max_concurrent=4, poll_timeout_s=None)

    assert settings.tts_model == "tts-1-hd"
    assert settings.tts_instructions is None
    assert settings.max_concurrent == 4
    assert settings.poll_timeout_s is None


def test_unknown_setting_is_rejected():
    with pytest.raises(ValueError, match="bogus"):
        PipelineSettings.from_env(bogus=1)
