"""
Dubbing pipeline orchestrator.

Stages run strictly in order, each on the complete output of the previous
one: extract → transcribe → translate → synthesize → mix → duck → mux.
"""

import json
import logging
import os
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from openai import OpenAI

from .config import KeyName, PipelineSettings, require_key
from .dispatch import SynthesisDispatcher
from .io_ffmpeg import MediaWorkspace, ensure_dir, extract_audio
from .models import (
    Segment,
    SpeakerConfig,
    TranscriptionResult,
    Translation,
    merge_speaker_configs,
    segments_from_dicts,
    segments_to_dicts,
)
from .srt_utils import format_srt, write_srt
from .stt import transcribe_assemblyai
from .timeline import assemble_dub_track, duck_under_original, mux_final
from .translation import translate_segments

logger = logging.getLogger("voicedub")

EXTRACTED_AUDIO = "input.wav"
DUB_TRACK = "dubbed.wav"
MIXED_TRACK = "mixed.wav"
ORIGINAL_SRT = "orig.srt"
TARGET_SRT = "target.srt"
FINAL_VIDEO = "output.mp4"


@dataclass
class DubbingResult:
    output_path: str
    source_language: str
    segments: list[Segment]
    translation: Translation
    speaker_configs: dict[str, SpeakerConfig] = field(default_factory=dict)
    original_srt_path: str | None = None
    target_srt_path: str | None = None

    @property
    def translation_degraded(self) -> bool:
        return self.translation.degraded


def transcribe_video(
    ws: MediaWorkspace,
    input_video: str,
    settings: PipelineSettings,
    key_overrides: Mapping[str, str] | None = None,
    cancel_event: threading.Event | None = None,
) -> TranscriptionResult:
    """Extract mono audio into the workspace and run diarized transcription."""
    api_key = require_key(KeyName.ASSEMBLYAI, key_overrides)
    extract_audio(input_video, ws.path(EXTRACTED_AUDIO), sample_rate=settings.extract_sample_rate)
    return transcribe_assemblyai(
        ws.read(EXTRACTED_AUDIO),
        api_key,
        poll_interval=settings.poll_interval_s,
        max_attempts=settings.poll_max_attempts,
        timeout_s=settings.poll_timeout_s,
        cancel_event=cancel_event,
        word_group_secs=settings.word_group_secs,
    )


def translate_transcript(
    target_language: str,
    segments: list[Segment],
    settings: PipelineSettings,
    key_overrides: Mapping[str, str] | None = None,
) -> Translation:
    if not segments:
        logger.info("No segments to translate")
        return Translation(language=target_language, segments=[])
    client = OpenAI(api_key=require_key(KeyName.OPENAI, key_overrides))
    return translate_segments(client, target_language, segments, model=settings.translation_model)


def _output_sidecar(output: str, suffix: str) -> str:
    p = Path(output)
    return str(p.with_name(f"{p.stem}.{suffix}.srt"))


def dub_video(
    input_video: str,
    output: str,
    target_language: str,
    speaker_configs: Iterable[SpeakerConfig] = (),
    *,
    settings: PipelineSettings | None = None,
    key_overrides: Mapping[str, str] | None = None,
    segments: list[Segment] | None = None,
    cancel_event: threading.Event | None = None,
) -> DubbingResult:
    """Run the whole pipeline for one video.

    ``segments`` skips transcription when given. Speakers without an
    explicit config get the default preset voice. Nothing is written to
    ``output`` unless every stage succeeds; the staging workspace is
    released on every exit path.
    """
    settings = settings or PipelineSettings()

    with MediaWorkspace() as ws:
        if segments is None:
            transcript = transcribe_video(ws, input_video, settings, key_overrides, cancel_event)
        else:
            extract_audio(
                input_video, ws.path(EXTRACTED_AUDIO), sample_rate=settings.extract_sample_rate
            )
            transcript = TranscriptionResult(language="auto", segments=list(segments))
        source_segments = transcript.segments
        if not source_segments:
            logger.warning("Transcript is empty")

        configs = merge_speaker_configs(source_segments, speaker_configs)

        translation = translate_transcript(
            target_language, source_segments, settings, key_overrides
        )
        if translation.degraded:
            logger.warning("Dubbing with original-language text (translation could not be aligned)")

        original_srt = target_srt = None
        if source_segments:
            ws.write_text(ORIGINAL_SRT, format_srt(source_segments))
            original_srt = ORIGINAL_SRT
        if translation.segments:
            ws.write_text(TARGET_SRT, format_srt(translation.segments))
            target_srt = TARGET_SRT

        dispatcher = SynthesisDispatcher(settings, key_overrides)
        parts = dispatcher.run(translation.segments, configs)

        assemble_dub_track(ws, parts, settings, out_name=DUB_TRACK)
        duck_under_original(ws, EXTRACTED_AUDIO, DUB_TRACK, settings, out_name=MIXED_TRACK)
        mux_final(
            ws,
            input_video,
            MIXED_TRACK,
            original_srt_name=original_srt,
            target_srt_name=target_srt,
            target_language=target_language,
            out_name=FINAL_VIDEO,
        )

        result = DubbingResult(
            output_path=ws.export(FINAL_VIDEO, output),
            source_language=transcript.language,
            segments=source_segments,
            translation=translation,
            speaker_configs=configs,
        )
        if original_srt:
            result.original_srt_path = ws.export(original_srt, _output_sidecar(output, "orig"))
        if target_srt:
            result.target_srt_path = ws.export(
                target_srt, _output_sidecar(output, target_language)
            )

    logger.info(f"Done (dubbed) -> {result.output_path}")
    return result


def prepare_transcript(
    input_video: str,
    workdir: str,
    *,
    settings: PipelineSettings | None = None,
    key_overrides: Mapping[str, str] | None = None,
    cancel_event: threading.Event | None = None,
) -> tuple[TranscriptionResult, str, str]:
    """Transcribe only, writing ``segments.json`` and ``subs.orig.srt`` to ``workdir``.

    The segments file can be reviewed and fed back to dub_video().
    """
    settings = settings or PipelineSettings()
    ensure_dir(workdir)
    with MediaWorkspace() as ws:
        transcript = transcribe_video(ws, input_video, settings, key_overrides, cancel_event)

    segments_json = os.path.join(workdir, "segments.json")
    with open(segments_json, "w", encoding="utf-8") as f:
        json.dump(
            {"language": transcript.language, "segments": segments_to_dicts(transcript.segments)},
            f,
            ensure_ascii=False,
            indent=2,
        )
    srt_path = os.path.join(workdir, "subs.orig.srt")
    write_srt(transcript.segments, srt_path)
    logger.info(f"Saved segments -> {segments_json}")
    logger.info(f"Saved SRT -> {srt_path}")
    return transcript, segments_json, srt_path


def load_segments_json(path: str) -> list[Segment]:
    """Read segments saved by prepare_transcript() (or a bare JSON list of segments)."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("segments", [])
    return segments_from_dicts(data)
