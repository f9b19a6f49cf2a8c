"""
Audio and video processing utilities using ffmpeg.
"""

import logging
import re
import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .errors import CommandError, MediaError

logger = logging.getLogger("voicedub")

_FILTER_INPUT_RE = re.compile(r"\[(\d+):[avs]\]")
_FILTER_LABEL_RE = re.compile(r"\[([A-Za-z_][A-Za-z0-9_]*)\]")
# output labels trail the last filter of a chain
_FILTER_OUTPUTS_RE = re.compile(r"[^\]\s]\s*((?:\[[A-Za-z_][A-Za-z0-9_]*\])+)$")


def run(cmd: list[str], *, check: bool = True) -> str:
    """Run a shell command and return stdout."""
    logger.debug("Running: %s", " ".join(map(str, cmd)))
    try:
        proc = subprocess.run(
            cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, check=False
        )
    except FileNotFoundError as e:
        raise MediaError(f"{cmd[0]} not found; install ffmpeg") from e
    if proc.returncode != 0 and check:
        logger.error("Command failed with code %d: %s", proc.returncode, proc.stdout)
        raise MediaError(f"Command failed with code {proc.returncode}: {proc.stdout[-500:]}")
    return proc.stdout


def ensure_dir(path: str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


def extract_audio(input_video: str, out_wav: str, sample_rate: int = 44100) -> None:
    """Extract mono PCM audio from a video file."""
    ensure_dir(str(Path(out_wav).parent))
    cmd = [
        "ffmpeg",
        "-y",
        "-i",
        input_video,
        "-vn",
        "-acodec",
        "pcm_s16le",
        "-ar",
        str(sample_rate),
        "-ac",
        "1",
        out_wav,
    ]
    run(cmd)


class MediaWorkspace:
    """Named byte buffers staged on disk for ffmpeg, scoped to one run.

    Use as a context manager; the backing directory is removed on exit,
    whether the run succeeded or failed.
    """

    def __init__(self, prefix: str = "voicedub-") -> None:
        self._prefix = prefix
        self._tmp: tempfile.TemporaryDirectory | None = None

    def __enter__(self) -> "MediaWorkspace":
        self._tmp = tempfile.TemporaryDirectory(prefix=self._prefix)
        logger.debug(f"Workspace created at {self._tmp.name}")
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._tmp is not None:
            self._tmp.cleanup()
            logger.debug(f"Workspace {self._tmp.name} released")
            self._tmp = None

    @property
    def root(self) -> Path:
        if self._tmp is None:
            raise MediaError("workspace is not open")
        return Path(self._tmp.name)

    def path(self, name: str) -> str:
        return str(self.root / name)

    def write(self, name: str, data: bytes) -> str:
        p = self.root / name
        p.write_bytes(data)
        return str(p)

    def write_text(self, name: str, text: str) -> str:
        p = self.root / name
        p.write_text(text, encoding="utf-8")
        return str(p)

    def read(self, name: str) -> bytes:
        return (self.root / name).read_bytes()

    def exists(self, name: str) -> bool:
        return (self.root / name).exists()

    def export(self, name: str, dest: str) -> str:
        """Copy a staged file out of the workspace."""
        ensure_dir(str(Path(dest).parent))
        shutil.copyfile(self.root / name, dest)
        return dest


@dataclass
class FfmpegCommand:
    """An ffmpeg invocation assembled clause by clause.

    ``maps`` entries are either a filter output label (``"[out]"``) or an
    input stream specifier starting with an input index (``"0:v:0"``,
    ``"2"``).
    """

    output: str
    inputs: list[str] = field(default_factory=list)
    filter_complex: str | None = None
    maps: list[str] = field(default_factory=list)
    codecs: list[tuple[str, str]] = field(default_factory=list)
    metadata: list[tuple[str, str]] = field(default_factory=list)
    output_options: list[str] = field(default_factory=list)

    def add_input(self, path: str) -> int:
        self.inputs.append(path)
        return len(self.inputs) - 1

    def map(self, spec: str) -> None:
        self.maps.append(spec)

    def codec(self, stream: str, name: str) -> None:
        self.codecs.append((stream, name))

    def tag(self, stream: str, value: str) -> None:
        self.metadata.append((stream, value))

    def _filter_outputs(self) -> set[str]:
        if not self.filter_complex:
            return set()
        labels: set[str] = set()
        for chain in self.filter_complex.split(";"):
            tail = _FILTER_OUTPUTS_RE.search(chain.strip())
            if tail:
                labels.update(_FILTER_LABEL_RE.findall(tail.group(1)))
        return labels

    def validate(self) -> None:
        """Check every map and filter input references something declared."""
        if not self.inputs:
            raise CommandError("ffmpeg command has no inputs")
        n = len(self.inputs)
        if self.filter_complex:
            for idx in _FILTER_INPUT_RE.findall(self.filter_complex):
                if int(idx) >= n:
                    raise CommandError(f"filter graph references undeclared input {idx}")
        outputs = self._filter_outputs()
        for spec in self.maps:
            if spec.startswith("["):
                if spec.strip("[]") not in outputs:
                    raise CommandError(f"map {spec} references no filter output")
                continue
            head = spec.split(":", 1)[0]
            if not head.isdigit() or int(head) >= n:
                raise CommandError(f"map {spec} references undeclared input")
        if not self.maps:
            raise CommandError("ffmpeg command maps no streams")

    def to_args(self) -> list[str]:
        self.validate()
        args = ["ffmpeg", "-y", "-hide_banner"]
        for path in self.inputs:
            args += ["-i", path]
        if self.filter_complex:
            args += ["-filter_complex", self.filter_complex]
        for spec in self.maps:
            args += ["-map", spec]
        for stream, name in self.codecs:
            args += [f"-c:{stream}", name]
        for stream, value in self.metadata:
            args += [f"-metadata:{stream}", value]
        args += self.output_options
        args.append(self.output)
        return args

    def execute(self) -> str:
        return run(self.to_args())
