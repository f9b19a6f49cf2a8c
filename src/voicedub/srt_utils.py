"""
SRT formatting, writing and parsing.
"""

import logging
import re

from .models import Segment

logger = logging.getLogger("voicedub")

_TS_RE = re.compile(r"(\d\d):(\d\d):(\d\d),(\d\d\d)\s+-->\s+(\d\d):(\d\d):(\d\d),(\d\d\d)")


def format_timestamp(t: float) -> str:
    """Format seconds as ``HH:MM:SS,mmm``."""
    total_ms = max(0, round(t * 1000))
    h, rem = divmod(total_ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02}:{m:02}:{s:02},{ms:03}"


def parse_timestamp(ts: str) -> float:
    h, m, rest = ts.split(":")
    s, ms = rest.split(",")
    total_ms = ((int(h) * 60 + int(m)) * 60 + int(s)) * 1000 + int(ms)
    return total_ms / 1000.0


def _cue_text(text: str) -> str:
    """Drop blank lines, which would end the SRT block early."""
    return "\n".join(ln.strip() for ln in text.splitlines() if ln.strip())


def format_srt(segments: list[Segment]) -> str:
    """Sequential numbered SRT blocks, one per segment."""
    return "".join(
        f"{i}\n{format_timestamp(s.start)} --> {format_timestamp(s.end)}\n{_cue_text(s.text)}\n\n"
        for i, s in enumerate(segments, 1)
    )


def write_srt(segments: list[Segment], path: str) -> None:
    """Write segments to SRT file."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(format_srt(segments))


def parse_srt_text(raw: str) -> list[Segment]:
    """Parse SRT text into segments (speaker labels are not part of SRT)."""
    blocks = re.split(r"\n\s*\n", raw.strip(), flags=re.M)
    out: list[Segment] = []
    for b in blocks:
        lines = [ln for ln in b.splitlines() if ln.strip()]
        if lines and re.match(r"^\d+$", lines[0].strip()):
            lines = lines[1:]
        if not lines:
            continue
        m = _TS_RE.match(lines[0].strip())
        if not m:
            logger.debug(f"Skipping malformed SRT block: {lines[0]!r}")
            continue
        g = m.groups()
        start = parse_timestamp(f"{g[0]}:{g[1]}:{g[2]},{g[3]}")
        end = parse_timestamp(f"{g[4]}:{g[5]}:{g[6]},{g[7]}")
        text = " ".join(ln.strip() for ln in lines[1:])
        out.append(Segment(start=start, end=end, text=text))
    return out


def parse_srt(path: str) -> list[Segment]:
    """Parse SRT file into segments."""
    with open(path, encoding="utf-8") as f:
        return parse_srt_text(f.read())
