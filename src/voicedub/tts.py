"""
Text-to-speech synthesis and voice cloning with OpenAI and ElevenLabs.
"""

import contextlib
import io
import logging

import httpx
from openai import OpenAI, OpenAIError
from pydub import AudioSegment

from .errors import ConfigurationError, UpstreamError, ValidationError

logger = logging.getLogger("voicedub")

ELEVENLABS_BASE_URL = "https://api.elevenlabs.io/v1"
HTTP_OK = 200

# ElevenLabs premade voices addressable by name.
ELEVENLABS_PREMADE = {
    "Rachel": "21m00Tcm4TlvDq8ikWAM",
    "Adam": "pNInz6obpgDQGcFmaJgB",
    "Antoni": "ErXwobaYiN019PkySvjV",
    "Bella": "EXAVITQu4vr4xnSDxMaL",
    "Domi": "AZnzlk1XvdvUeBnXmlld",
    "Josh": "TxGEqnHWrfWFTfGW9XjX",
}


def _elevenlabs_client(http: httpx.Client | None, timeout: float = 60.0):
    if http is not None:
        return contextlib.nullcontext(http)
    return httpx.Client(follow_redirects=True, timeout=timeout)


def _to_wav(data: bytes, fmt: str) -> bytes:
    """Re-encode an audio buffer as WAV."""
    clip = AudioSegment.from_file(io.BytesIO(data), format=fmt)
    buf = io.BytesIO()
    clip.export(buf, format="wav")
    return buf.getvalue()


def clip_duration_ms(data: bytes) -> int:
    """Duration of a WAV buffer in milliseconds."""
    return len(AudioSegment.from_file(io.BytesIO(data), format="wav"))


def tts_speak_openai(
    client: OpenAI,
    text: str,
    model: str,
    voice: str,
    instructions: str | None = None,
) -> bytes:
    """Synthesize speech using OpenAI TTS and return WAV bytes."""
    if client is None:
        raise ConfigurationError("OpenAI client is not initialized (missing OPENAI_API_KEY)")

    kwargs = {
        "model": model,
        "voice": voice or "alloy",
        "input": text,
        "response_format": "wav",
    }
    if instructions:
        kwargs["instructions"] = instructions
    try:
        resp = client.audio.speech.create(**kwargs)
    except OpenAIError as e:
        raise UpstreamError(f"TTS failed: {e}", provider="openai") from e
    return resp.content


def elevenlabs_tts_speak(
    api_key: str,
    voice_id: str,
    text: str,
    model_id: str = "eleven_multilingual_v2",
    http: httpx.Client | None = None,
) -> bytes:
    """Synthesize speech using ElevenLabs TTS and return WAV bytes."""
    if not api_key:
        raise ConfigurationError("ELEVENLABS_API_KEY is not set.")
    if not voice_id:
        raise ValidationError("ElevenLabs voice_id is required.")

    voice_id = ELEVENLABS_PREMADE.get(voice_id, voice_id)
    url = f"{ELEVENLABS_BASE_URL}/text-to-speech/{voice_id}"
    headers = {
        "xi-api-key": api_key,
        "accept": "audio/mpeg",
        "Content-Type": "application/json",
        "User-Agent": "voicedub/0.1",
    }
    payload = {
        "text": text,
        "model_id": model_id,
        "voice_settings": {"stability": 0.5, "similarity_boost": 0.8},
    }

    with _elevenlabs_client(http) as client:
        r = client.post(url, json=payload, headers=headers)
    ctype = r.headers.get("content-type", "")
    if r.status_code != HTTP_OK or not ctype.startswith(("audio/", "application/octet-stream")):
        raise UpstreamError(
            "TTS failed", provider="elevenlabs", status=r.status_code, details=r.text[:300]
        )
    if "wav" in ctype:
        return r.content
    return _to_wav(r.content, "mp3")


def elevenlabs_clone_voice(
    api_key: str,
    name: str,
    sample: bytes,
    filename: str = "sample.wav",
    http: httpx.Client | None = None,
) -> str:
    """Create an instant voice clone from a sample and return its voice_id."""
    if not api_key:
        raise ConfigurationError("ELEVENLABS_API_KEY is not set.")

    with _elevenlabs_client(http, timeout=120.0) as client:
        r = client.post(
            f"{ELEVENLABS_BASE_URL}/voices/add",
            headers={"xi-api-key": api_key, "User-Agent": "voicedub/0.1"},
            data={"name": name},
            files={"files": (filename, sample)},
        )
    if r.status_code != HTTP_OK:
        raise UpstreamError(
            "voice create failed", provider="elevenlabs", status=r.status_code, details=r.text[:300]
        )
    try:
        voice_id = r.json().get("voice_id")
    except (ValueError, AttributeError) as e:
        raise UpstreamError(
            "voice create returned a malformed body",
            provider="elevenlabs",
            status=r.status_code,
            details=r.text[:300],
        ) from e
    if not voice_id:
        raise UpstreamError("voice create returned no voice_id", provider="elevenlabs")
    logger.info(f"Created ElevenLabs voice clone {name} -> {voice_id}")
    return str(voice_id)
