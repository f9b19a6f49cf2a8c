"""
Shared fixtures for pipeline tests.
"""

import io
import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from pydub import AudioSegment

from voicedub import io_ffmpeg
from voicedub.config import KeyName
from voicedub.models import Segment


def make_wav(duration_ms: int = 200) -> bytes:
    """A short silent WAV buffer."""
    buf = io.BytesIO()
    AudioSegment.silent(duration=duration_ms, frame_rate=24000).export(buf, format="wav")
    return buf.getvalue()


@pytest.fixture
def wav_bytes() -> bytes:
    return make_wav()


@pytest.fixture
def three_segments() -> list[Segment]:
    return [
        Segment(start=0.0, end=2.0, text="hi", speaker="S0"),
        Segment(start=2.0, end=5.0, text="bye", speaker="S1"),
        Segment(start=5.0, end=6.0, text="ok", speaker="S0"),
    ]


@pytest.fixture
def no_env_keys(monkeypatch):
    """Remove provider keys from the environment."""
    for name in KeyName:
        monkeypatch.delenv(name.value, raising=False)


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    """Replace ffmpeg with a recorder that creates each command's output file."""
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        Path(cmd[-1]).write_bytes(b"RIFF")
        return ""

    monkeypatch.setattr(io_ffmpeg, "run", fake_run)
    return calls


@pytest.fixture
def openai_client(monkeypatch, no_env_keys, wav_bytes):
    """One fake OpenAI client serving both translation and speech."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    client = MagicMock()
    content = json.dumps({"lines": ["uno", "dos", "tres"]})
    client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )
    client.audio.speech.create.return_value = SimpleNamespace(content=wav_bytes)
    factory = MagicMock(return_value=client)
    monkeypatch.setattr("voicedub.pipeline.OpenAI", factory)
    monkeypatch.setattr("voicedub.dispatch.OpenAI", factory)
    return client
