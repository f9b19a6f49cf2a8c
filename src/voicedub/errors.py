"""
Error taxonomy for the dubbing pipeline.

Every error carries an HTTP-style ``status_code`` (for callers that surface
failures over a web API) and an ``exit_code`` used by the CLI.
"""


class DubbingError(RuntimeError):
    """Base class for every fatal pipeline error."""

    status_code = 500
    exit_code = 1
    status_class = "error"


class ValidationError(DubbingError):
    """Bad input, e.g. a clone requested without a voice sample."""

    status_code = 400
    exit_code = 2
    status_class = "bad input"


class EmptyMixError(ValidationError):
    """The timeline assembler was asked to mix zero synthesized parts."""


class ConfigurationError(DubbingError):
    """A required credential is missing."""

    status_code = 500
    exit_code = 3
    status_class = "missing config"


class UpstreamError(DubbingError):
    """Non-success response from an external provider."""

    status_code = 502
    exit_code = 4
    status_class = "upstream failure"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status: int | None = None,
        details: str | None = None,
    ) -> None:
        self.provider = provider
        self.status = status
        self.details = details
        text = f"{provider}: {message}" if provider else message
        if status is not None:
            text += f" ({status})"
        if details:
            text += f": {details}"
        super().__init__(text)


class TranscriptionTimeout(DubbingError, TimeoutError):
    """Transcription polling hit its ceiling; try again later."""

    status_code = 504
    exit_code = 5
    status_class = "timeout"


class MediaError(DubbingError):
    """ffmpeg/ffprobe failed."""

    exit_code = 6
    status_class = "media failure"


class CommandError(MediaError):
    """An ffmpeg command description is internally inconsistent."""
