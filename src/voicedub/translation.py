"""
Line-aligned transcript translation for dubbing.
"""

import json
import logging
import re
from typing import Any

from openai import OpenAI, OpenAIError

from .errors import ConfigurationError, UpstreamError
from .models import Segment, Translation

logger = logging.getLogger("voicedub")

SYSTEM_PROMPT = (
    "You are a professional dubbing translator. "
    "Keep timing consistent and keep sentences concise."
)

_SPEAKER_TAG_RE = re.compile(r"^\s*\[[^\]]{1,32}\]\s*")


def get_language_name(language_code: str) -> str:
    """Get human-readable language name from language code."""
    language_names = {
        "ru": "Russian",
        "de": "German",
        "fr": "French",
        "es": "Spanish",
        "it": "Italian",
        "pt": "Portuguese",
        "ja": "Japanese",
        "ko": "Korean",
        "zh": "Chinese",
        "ar": "Arabic",
        "hi": "Hindi",
        "bn": "Bengali",
        "en": "English",
        "uk": "Ukrainian",
        "pl": "Polish",
        "nl": "Dutch",
        "sv": "Swedish",
        "tr": "Turkish",
        "he": "Hebrew",
        "th": "Thai",
        "vi": "Vietnamese",
    }
    return language_names.get(language_code.lower(), language_code.upper())


def build_translation_prompt(target_language: str, segments: list[Segment]) -> str:
    """One prompt embedding every segment as ``[speaker] text``, one per line."""
    joined = "\n".join(f"[{s.speaker}] {s.text}" for s in segments)
    return (
        f"Translate the following {len(segments)} lines into "
        f"{get_language_name(target_language)} ({target_language}). "
        "Keep meaning, tone, and brevity suitable for dubbing: each translation should take "
        "about as long to speak as the original line. "
        "Keep the number and order of lines exactly the same. "
        'Return ONLY a JSON object of the form {"lines": ["...", "..."]} with one string per '
        "input line, without the [speaker] tags and without extra commentary.\n"
        f"Lines:\n{joined}"
    )


def _array_from_json(obj: Any) -> list | None:
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict):
        for key in ("lines", "translations"):
            if isinstance(obj.get(key), list):
                return obj[key]
        for value in obj.values():
            if isinstance(value, list):
                return value
    return None


def _clean(line: Any) -> str:
    text = _SPEAKER_TAG_RE.sub("", str(line))
    # one cue per segment: paragraph breaks would split the subtitle block
    return " ".join(ln.strip() for ln in text.splitlines() if ln.strip())


def parse_translated_lines(content: str) -> list[str]:
    """Extract translated lines from a model response.

    Tries structured JSON first (a bare array, an object holding an array, or
    a bracketed array embedded in prose), then falls back to one line per
    non-empty text line.
    """
    arr: list | None = None
    try:
        arr = _array_from_json(json.loads(content))
    except json.JSONDecodeError:
        start = content.find("[")
        end = content.rfind("]")
        if start != -1 and end > start:
            try:
                arr = _array_from_json(json.loads(content[start : end + 1]))
            except json.JSONDecodeError:
                arr = None
            # prose may quote other brackets; only a list of strings is a translation
            if arr is not None and not all(isinstance(x, str) for x in arr):
                arr = None
    if arr is not None:
        return [_clean(x) for x in arr]
    return [_clean(ln) for ln in content.splitlines() if ln.strip()]


def align_translation(
    target_language: str, segments: list[Segment], content: str
) -> Translation:
    """Map a raw model response onto segments, guaranteeing equal length.

    On any count mismatch the original text is kept for every segment and
    the result is flagged ``degraded``.
    """
    lines = parse_translated_lines(content)
    if len(lines) != len(segments):
        logger.warning(
            f"Segment count changed during translation: {len(segments)} -> {len(lines)}. "
            "Using original text."
        )
        return Translation(language=target_language, segments=list(segments), degraded=True)

    out: list[Segment] = []
    for seg, line in zip(segments, lines, strict=True):
        out.append(
            Segment(start=seg.start, end=seg.end, text=line or seg.text, speaker=seg.speaker)
        )
    return Translation(language=target_language, segments=out)


def translate_segments(
    client: OpenAI,
    target_language: str,
    segments: list[Segment],
    model: str = "gpt-4o-mini",
) -> Translation:
    """Translate all segments in one request, preserving timing and speakers."""
    if not segments:
        return Translation(language=target_language, segments=[])
    if client is None:
        raise ConfigurationError("OpenAI client is not initialized (missing OPENAI_API_KEY)")

    logger.info(f"Translating {len(segments)} segments into {target_language} using {model}...")
    try:
        chat = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_translation_prompt(target_language, segments)},
            ],
            temperature=0.3,
            response_format={"type": "json_object"},
        )
    except OpenAIError as e:
        raise UpstreamError(f"translation request failed: {e}", provider="openai") from e

    content = chat.choices[0].message.content or ""
    translation = align_translation(target_language, segments, content)
    if not translation.degraded:
        logger.info(f"Translation completed: {len(translation.segments)} segments")
    return translation
