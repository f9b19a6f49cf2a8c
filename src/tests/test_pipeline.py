"""
End-to-end orchestration tests with ffmpeg and providers faked out.
"""

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from voicedub import pipeline
from voicedub.errors import ConfigurationError, EmptyMixError
from voicedub.models import Segment, SpeakerConfig, TranscriptionResult
from voicedub.pipeline import dub_video, load_segments_json, prepare_transcript
from voicedub.srt_utils import parse_srt


def test_full_run_writes_video_and_sidecar_subtitles(
    tmp_path, fake_ffmpeg, openai_client, three_segments
):
    output = tmp_path / "out.mp4"

    result = dub_video("in.mp4", str(output), "es", segments=three_segments)

    assert output.read_bytes() == b"RIFF"
    assert result.output_path == str(output)
    assert not result.translation_degraded
    assert [s.text for s in parse_srt(result.target_srt_path)] == ["uno", "dos", "tres"]
    assert [s.text for s in parse_srt(result.original_srt_path)] == ["hi", "bye", "ok"]
    assert result.target_srt_path == str(tmp_path / "out.es.srt")
    assert set(result.speaker_configs) == {"S0", "S1"}

    extract, mix, duck, mux = fake_ffmpeg
    assert extract[0] == "ffmpeg" and "-vn" in extract
    assert mix.count("-i") == 3
    assert duck.count("-i") == 2
    maps = [mux[i + 1] for i, a in enumerate(mux) if a == "-map"]
    assert maps == ["0:v:0", "1:a:0", "2", "3"]
    assert openai_client.audio.speech.create.call_count == 3


def test_degraded_translation_dubs_original_text(
    tmp_path, fake_ffmpeg, openai_client, three_segments
):
    content = json.dumps({"lines": ["uno"]})
    openai_client.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
    )

    result = dub_video("in.mp4", str(tmp_path / "out.mp4"), "es", segments=three_segments)

    assert result.translation_degraded
    spoken = [c.kwargs["input"] for c in openai_client.audio.speech.create.call_args_list]
    assert spoken == ["hi", "bye", "ok"]


def test_zero_segments_fail_without_output(tmp_path, fake_ffmpeg, no_env_keys):
    output = tmp_path / "out.mp4"

    with pytest.raises(EmptyMixError):
        dub_video("in.mp4", str(output), "hi", segments=[])

    assert not output.exists()
    (extract,) = fake_ffmpeg
    # the staging directory went away with the failed run
    assert not Path(extract[-1]).parent.exists()


def test_missing_transcription_key_fails_before_ffmpeg(tmp_path, fake_ffmpeg, no_env_keys):
    with pytest.raises(ConfigurationError, match="ASSEMBLYAI_API_KEY"):
        dub_video("in.mp4", str(tmp_path / "out.mp4"), "hi")
    assert fake_ffmpeg == []


def test_transcribed_speakers_get_default_or_supplied_voices(
    tmp_path, monkeypatch, fake_ffmpeg, openai_client
):
    monkeypatch.setenv("ASSEMBLYAI_API_KEY", "aai-test")
    segs = [Segment(0.0, 1.0, "a", "SA"), Segment(1.0, 2.0, "b", "SB"), Segment(2.0, 3.0, "c")]
    transcribe = MagicMock(return_value=TranscriptionResult(language="en", segments=segs))
    monkeypatch.setattr(pipeline, "transcribe_assemblyai", transcribe)

    result = dub_video(
        "in.mp4",
        str(tmp_path / "out.mp4"),
        "es",
        [SpeakerConfig(speaker="SB", voice_id="echo")],
    )

    assert result.source_language == "en"
    assert transcribe.call_args.args == (b"RIFF", "aai-test")
    voices = [c.kwargs["voice"] for c in openai_client.audio.speech.create.call_args_list]
    assert voices == ["alloy", "echo", "alloy"]


def test_prepare_writes_reviewable_segments(tmp_path, monkeypatch, fake_ffmpeg, no_env_keys):
    monkeypatch.setenv("ASSEMBLYAI_API_KEY", "aai-test")
    segs = [Segment(0.0, 1.25, "Hello.", "SA"), Segment(1.5, 3.0, "Hi!", "SB")]
    monkeypatch.setattr(
        pipeline,
        "transcribe_assemblyai",
        MagicMock(return_value=TranscriptionResult(language="en", segments=segs)),
    )

    transcript, segments_json, srt_path = prepare_transcript("in.mp4", str(tmp_path / "work"))

    assert transcript.segments == segs
    assert json.loads(Path(segments_json).read_text(encoding="utf-8"))["language"] == "en"
    assert load_segments_json(segments_json) == segs
    assert [s.text for s in parse_srt(srt_path)] == ["Hello.", "Hi!"]


def test_load_segments_accepts_bare_list(tmp_path):
    path = tmp_path / "segments.json"
    path.write_text(json.dumps([{"start": 0, "end": 1.5, "text": " hey "}]), encoding="utf-8")

    assert load_segments_json(str(path)) == [Segment(0.0, 1.5, "hey", "S0")]
