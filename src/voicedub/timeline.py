"""
Timeline assembly, ducking and final multiplexing via ffmpeg filter graphs.
"""

import logging

from .config import PipelineSettings
from .errors import EmptyMixError
from .io_ffmpeg import FfmpegCommand, MediaWorkspace
from .models import SynthesizedPart

logger = logging.getLogger("voicedub")

ORIGINAL_SUBTITLE_LANGUAGE = "xx"


def delay_ms(start: float) -> int:
    """Timeline offset of a clip in ms, never negative."""
    return max(0, round(start * 1000))


def build_mix_graph(
    parts: list[SynthesizedPart], sample_rate: int = 44100, channels: int = 2
) -> str:
    """One adelay per part feeding a single equal-gain amix.

    Input ``i`` of the command must be ``parts[i]``; the graph references
    streams by position.
    """
    if not parts:
        raise EmptyMixError("Nothing to mix: no synthesized segments")
    layout = "stereo" if channels == 2 else "mono"
    chains = []
    for idx, p in enumerate(parts):
        ms = delay_ms(p.start)
        chains.append(
            f"[{idx}:a]aresample={sample_rate},aformat=channel_layouts={layout},"
            f"adelay={ms}|{ms}[a{idx}]"
        )
    labels = "".join(f"[a{idx}]" for idx in range(len(parts)))
    chains.append(f"{labels}amix=inputs={len(parts)}:normalize=0:dropout_transition=0[out]")
    return ";".join(chains)


def build_mix_command(
    ws: MediaWorkspace, parts: list[SynthesizedPart], out_name: str, settings: PipelineSettings
) -> FfmpegCommand:
    cmd = FfmpegCommand(output=ws.path(out_name))
    for p in parts:
        cmd.add_input(ws.path(p.filename))
    cmd.filter_complex = build_mix_graph(parts, settings.mix_sample_rate, settings.mix_channels)
    cmd.map("[out]")
    cmd.output_options += ["-ar", str(settings.mix_sample_rate), "-ac", str(settings.mix_channels)]
    return cmd


def assemble_dub_track(
    ws: MediaWorkspace,
    parts: list[SynthesizedPart],
    settings: PipelineSettings | None = None,
    out_name: str = "dubbed.wav",
) -> str:
    """Stage every part in the workspace and mix them into one dub track."""
    settings = settings or PipelineSettings()
    if not parts:
        raise EmptyMixError("Nothing to mix: no synthesized segments")
    for p in parts:
        ws.write(p.filename, p.audio)
    cmd = build_mix_command(ws, parts, out_name, settings)
    logger.info(f"Mixing {len(parts)} clips into {out_name} …")
    cmd.execute()
    return out_name


def build_duck_graph(settings: PipelineSettings) -> str:
    """Compress the original (input 0) keyed by the dub (input 1), then sum both."""
    layout = "stereo" if settings.mix_channels == 2 else "mono"
    fmt = f"aresample={settings.mix_sample_rate},aformat=channel_layouts={layout}"
    compressor = (
        f"sidechaincompress=threshold={settings.duck_threshold:g}:ratio={settings.duck_ratio:g}"
        f":attack={settings.duck_attack_ms:g}:release={settings.duck_release_ms:g}"
    )
    return ";".join(
        [
            f"[0:a]{fmt}[orig]",
            f"[1:a]{fmt},asplit=2[key][dub]",
            f"[orig][key]{compressor}[duck]",
            "[duck][dub]amix=inputs=2:normalize=0:duration=longest[out]",
        ]
    )


def build_duck_command(
    ws: MediaWorkspace,
    original_name: str,
    dub_name: str,
    out_name: str,
    settings: PipelineSettings,
) -> FfmpegCommand:
    cmd = FfmpegCommand(output=ws.path(out_name))
    cmd.add_input(ws.path(original_name))
    cmd.add_input(ws.path(dub_name))
    cmd.filter_complex = build_duck_graph(settings)
    cmd.map("[out]")
    cmd.output_options += ["-ar", str(settings.mix_sample_rate), "-ac", str(settings.mix_channels)]
    return cmd


def duck_under_original(
    ws: MediaWorkspace,
    original_name: str = "input.wav",
    dub_name: str = "dubbed.wav",
    settings: PipelineSettings | None = None,
    out_name: str = "mixed.wav",
) -> str:
    """Lower the original track under dub lines and mix both."""
    settings = settings or PipelineSettings()
    logger.info("Ducking original audio under the dub …")
    build_duck_command(ws, original_name, dub_name, out_name, settings).execute()
    return out_name


def build_mux_command(
    video_path: str,
    audio_path: str,
    output_path: str,
    *,
    original_srt: str | None = None,
    target_srt: str | None = None,
    target_language: str | None = None,
) -> FfmpegCommand:
    """Video copy + fresh audio + whichever subtitle tracks were produced."""
    cmd = FfmpegCommand(output=output_path)
    video_in = cmd.add_input(video_path)
    audio_in = cmd.add_input(audio_path)
    cmd.map(f"{video_in}:v:0")
    cmd.map(f"{audio_in}:a:0")
    cmd.codec("v", "copy")
    cmd.codec("a", "aac")

    subtitles: list[tuple[str, str]] = []
    if original_srt:
        subtitles.append((original_srt, ORIGINAL_SUBTITLE_LANGUAGE))
    if target_srt:
        subtitles.append((target_srt, target_language or ORIGINAL_SUBTITLE_LANGUAGE))
    if subtitles:
        cmd.codec("s", "mov_text")
    for sub_idx, (srt_path, lang) in enumerate(subtitles):
        cmd.map(str(cmd.add_input(srt_path)))
        cmd.tag(f"s:s:{sub_idx}", f"language={lang}")

    cmd.output_options += ["-shortest", "-movflags", "+faststart"]
    return cmd


def mux_final(
    ws: MediaWorkspace,
    video_path: str,
    audio_name: str = "mixed.wav",
    *,
    original_srt_name: str | None = None,
    target_srt_name: str | None = None,
    target_language: str | None = None,
    out_name: str = "output.mp4",
) -> str:
    cmd = build_mux_command(
        video_path,
        ws.path(audio_name),
        ws.path(out_name),
        original_srt=ws.path(original_srt_name) if original_srt_name else None,
        target_srt=ws.path(target_srt_name) if target_srt_name else None,
        target_language=target_language,
    )
    logger.info(f"Muxing final video with {len(cmd.inputs) - 2} subtitle track(s) …")
    cmd.execute()
    return out_name
