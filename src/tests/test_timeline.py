"""
Tests for mix, duck and mux command construction.
"""

import pytest

from voicedub import io_ffmpeg
from voicedub.config import PipelineSettings
from voicedub.errors import EmptyMixError
from voicedub.io_ffmpeg import MediaWorkspace
from voicedub.models import SynthesizedPart
from voicedub.timeline import (
    assemble_dub_track,
    build_duck_graph,
    build_mix_graph,
    build_mux_command,
    delay_ms,
    duck_under_original,
)


@pytest.fixture
def ffmpeg_calls(monkeypatch):
    calls = []
    monkeypatch.setattr(io_ffmpeg, "run", lambda cmd, **kw: calls.append(cmd) or "")
    return calls


def _parts(*starts):
    return [SynthesizedPart(f"seg_{i:04d}.wav", b"RIFF", s) for i, s in enumerate(starts)]


def test_mix_graph_delays_each_clip_by_its_start():
    graph = build_mix_graph(_parts(0.0, 1.5, 12.345))
    chains = graph.split(";")

    assert len(chains) == 4
    assert chains[0].endswith("adelay=0|0[a0]")
    assert chains[1].endswith("adelay=1500|1500[a1]")
    assert chains[2].endswith("adelay=12345|12345[a2]")
    assert chains[3] == "[a0][a1][a2]amix=inputs=3:normalize=0:dropout_transition=0[out]"


def test_negative_start_is_clamped_to_zero():
    assert delay_ms(-0.25) == 0
    assert "adelay=0|0[a0]" in build_mix_graph(_parts(-0.25))


def test_mix_graph_formats_every_clip_alike():
    graph = build_mix_graph(_parts(0.0, 1.0), sample_rate=48000, channels=1)
    assert graph.count("aresample=48000,aformat=channel_layouts=mono") == 2


def test_empty_mix_is_rejected():
    with pytest.raises(EmptyMixError):
        build_mix_graph([])


def test_assemble_with_no_parts_runs_nothing(ffmpeg_calls):
    with MediaWorkspace() as ws, pytest.raises(EmptyMixError):
        assemble_dub_track(ws, [])
    assert ffmpeg_calls == []


def test_assemble_stages_parts_and_maps_mix_output(ffmpeg_calls):
    parts = _parts(0.0, 2.0)
    with MediaWorkspace() as ws:
        assert assemble_dub_track(ws, parts) == "dubbed.wav"
        assert ws.read("seg_0001.wav") == b"RIFF"
        dub_path = ws.path("dubbed.wav")

    (cmd,) = ffmpeg_calls
    assert cmd.count("-i") == 2
    assert cmd[cmd.index("-map") + 1] == "[out]"
    assert cmd[-1] == dub_path


def test_duck_graph_keys_original_on_dub():
    graph = build_duck_graph(PipelineSettings())

    assert "[1:a]aresample=44100,aformat=channel_layouts=stereo,asplit=2[key][dub]" in graph
    assert "[orig][key]sidechaincompress=threshold=0.05:ratio=8:attack=5:release=250[duck]" in graph
    assert graph.endswith("[duck][dub]amix=inputs=2:normalize=0:duration=longest[out]")


def test_duck_command_uses_original_then_dub(ffmpeg_calls):
    with MediaWorkspace() as ws:
        duck_under_original(ws, "input.wav", "dubbed.wav")
        expected = [ws.path("input.wav"), ws.path("dubbed.wav")]

    (cmd,) = ffmpeg_calls
    inputs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"]
    assert inputs == expected


def _args_after(args, flag):
    return [args[i + 1] for i, a in enumerate(args) if a == flag]


def test_mux_without_subtitles():
    args = build_mux_command("in.mp4", "mixed.wav", "out.mp4").to_args()

    assert _args_after(args, "-map") == ["0:v:0", "1:a:0"]
    assert "-c:s" not in args
    assert "-shortest" in args
    assert args[-3:] == ["-movflags", "+faststart", "out.mp4"]


def test_mux_with_both_subtitle_tracks():
    cmd = build_mux_command(
        "in.mp4",
        "mixed.wav",
        "out.mp4",
        original_srt="orig.srt",
        target_srt="target.srt",
        target_language="hi",
    )
    args = cmd.to_args()

    assert _args_after(args, "-i") == ["in.mp4", "mixed.wav", "orig.srt", "target.srt"]
    assert _args_after(args, "-map") == ["0:v:0", "1:a:0", "2", "3"]
    assert _args_after(args, "-c:v") == ["copy"]
    assert _args_after(args, "-c:a") == ["aac"]
    assert _args_after(args, "-c:s") == ["mov_text"]
    assert _args_after(args, "-metadata:s:s:0") == ["language=xx"]
    assert _args_after(args, "-metadata:s:s:1") == ["language=hi"]


def test_mux_with_target_subtitles_only():
    args = build_mux_command(
        "in.mp4", "mixed.wav", "out.mp4", target_srt="target.srt", target_language="de"
    ).to_args()

    assert _args_after(args, "-map") == ["0:v:0", "1:a:0", "2"]
    assert _args_after(args, "-metadata:s:s:0") == ["language=de"]
