"""
Speech-to-text with speaker diarization via AssemblyAI.
"""

import contextlib
import logging
import threading
import time
from enum import Enum
from typing import Any

import httpx

from .errors import TranscriptionTimeout, UpstreamError
from .models import Segment, TranscriptionResult

logger = logging.getLogger("voicedub")

ASSEMBLYAI_BASE_URL = "https://api.assemblyai.com/v2"
HTTP_OK = 200
HTTP_SERVER_ERROR = 500


class JobState(Enum):
    UPLOADING = "uploading"
    CREATED = "created"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


def _json(r: httpx.Response, what: str) -> dict[str, Any]:
    """Decode a JSON object body, or fail as an upstream error."""
    try:
        data = r.json()
    except ValueError as e:
        raise UpstreamError(
            f"{what} returned a non-JSON body",
            provider="assemblyai",
            status=r.status_code,
            details=r.text[:200],
        ) from e
    if not isinstance(data, dict):
        raise UpstreamError(f"{what} returned unexpected JSON", provider="assemblyai")
    return data


class AssemblyAIClient:
    """Thin request builder for the AssemblyAI v2 REST API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = ASSEMBLYAI_BASE_URL,
        http: httpx.Client | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = http
        self._timeout = timeout

    def _client(self):
        if self._http is not None:
            return contextlib.nullcontext(self._http)
        return httpx.Client(follow_redirects=True, timeout=self._timeout)

    def _headers(self, **extra: str) -> dict[str, str]:
        return {"authorization": self.api_key, "User-Agent": "voicedub/0.1", **extra}

    def upload(self, audio: bytes) -> str:
        """Upload raw audio and return the upload URL used as the job handle."""
        with self._client() as client:
            r = client.post(
                f"{self.base_url}/upload",
                content=audio,
                headers=self._headers(**{"Content-Type": "application/octet-stream"}),
            )
        if r.status_code != HTTP_OK:
            raise UpstreamError(
                "upload failed", provider="assemblyai", status=r.status_code, details=r.text[:500]
            )
        upload_url = _json(r, "upload").get("upload_url")
        if not upload_url:
            raise UpstreamError("upload returned no upload_url", provider="assemblyai")
        return upload_url

    def create_transcript(self, audio_url: str) -> str:
        """Request a diarized, punctuated transcript with language detection."""
        payload = {
            "audio_url": audio_url,
            "speaker_labels": True,
            "language_detection": True,
            "punctuate": True,
            "format_text": True,
        }
        with self._client() as client:
            r = client.post(f"{self.base_url}/transcript", json=payload, headers=self._headers())
        if r.status_code != HTTP_OK:
            raise UpstreamError(
                "transcript create failed",
                provider="assemblyai",
                status=r.status_code,
                details=r.text[:500],
            )
        job_id = _json(r, "transcript create").get("id")
        if not job_id:
            raise UpstreamError("transcript create returned no id", provider="assemblyai")
        return job_id

    def get_transcript(self, job_id: str) -> httpx.Response:
        with self._client() as client:
            return client.get(f"{self.base_url}/transcript/{job_id}", headers=self._headers())


class TranscriptionJob:
    """Upload → create → poll lifecycle of one transcription job.

    Polling stops on ``completed`` or ``error``, after ``max_attempts``
    polls, once ``timeout_s`` wall-clock seconds have elapsed, or when
    ``cancel_event`` is set. The last three end in ``JobState.TIMED_OUT``.
    """

    def __init__(
        self,
        client: AssemblyAIClient,
        *,
        poll_interval: float = 2.0,
        max_attempts: int = 300,
        timeout_s: float | None = None,
        cancel_event: threading.Event | None = None,
        word_group_secs: float = 5.0,
    ) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.timeout_s = timeout_s
        self.cancel_event = cancel_event or threading.Event()
        self.word_group_secs = word_group_secs
        self.state = JobState.UPLOADING
        self.job_id: str | None = None
        self.attempts = 0
        self.error: str | None = None

    def run(self, audio: bytes) -> TranscriptionResult:
        self.state = JobState.UPLOADING
        logger.info(f"Uploading {len(audio)} bytes of audio to AssemblyAI …")
        try:
            upload_url = self.client.upload(audio)
            self.state = JobState.CREATED
            self.job_id = self.client.create_transcript(upload_url)
        except UpstreamError as e:
            self._fail(str(e))
            raise
        except httpx.HTTPError as e:
            self._fail(str(e))
            raise UpstreamError(str(e), provider="assemblyai") from e
        logger.info(f"Transcription job {self.job_id} created")

        payload = self._poll()
        segments = segments_from_transcript(payload, group_secs=self.word_group_secs)
        language = payload.get("language_code") or "auto"
        logger.info(f"Transcription completed: {len(segments)} segments (language: {language})")
        return TranscriptionResult(language=language, segments=segments)

    def _fail(self, message: str) -> None:
        self.state = JobState.FAILED
        self.error = message

    def _timed_out(self, reason: str) -> TranscriptionTimeout:
        self.state = JobState.TIMED_OUT
        self.error = reason
        logger.warning(f"Transcription job {self.job_id} {reason}")
        return TranscriptionTimeout(f"Transcription {reason}; try again later")

    def _poll(self) -> dict[str, Any]:
        self.state = JobState.POLLING
        deadline = time.monotonic() + self.timeout_s if self.timeout_s is not None else None

        while self.attempts < self.max_attempts:
            if self.cancel_event.wait(self.poll_interval):
                raise self._timed_out("was cancelled while polling")
            if deadline is not None and time.monotonic() >= deadline:
                raise self._timed_out(f"exceeded {self.timeout_s:.0f}s wall-clock ceiling")
            self.attempts += 1

            try:
                r = self.client.get_transcript(self.job_id)
            except httpx.TransportError as e:
                logger.warning(f"Poll {self.attempts} failed ({e}); retrying")
                continue
            if r.status_code >= HTTP_SERVER_ERROR:
                logger.warning(f"Poll {self.attempts} returned {r.status_code}; retrying")
                continue
            if r.status_code != HTTP_OK:
                self._fail(r.text[:500])
                raise UpstreamError(
                    "transcript poll failed",
                    provider="assemblyai",
                    status=r.status_code,
                    details=r.text[:500],
                )

            try:
                data = _json(r, "transcript poll")
            except UpstreamError as e:
                self._fail(str(e))
                raise
            status = data.get("status")
            logger.debug(f"Poll {self.attempts}: status={status}")
            if status == "completed":
                self.state = JobState.COMPLETED
                return data
            if status == "error":
                message = data.get("error") or "transcription failed"
                self._fail(message)
                raise UpstreamError(message, provider="assemblyai")

        raise self._timed_out(f"did not finish after {self.attempts} polls")


def _ms(value: Any) -> float:
    return float(value or 0) / 1000.0


def segments_from_transcript(result: dict[str, Any], group_secs: float = 5.0) -> list[Segment]:
    """Turn a completed AssemblyAI transcript into segments.

    Utterances map 1:1 to segments. Without utterances, words are grouped
    greedily under a single speaker until a group spans more than
    ``group_secs``.
    """
    utterances = result.get("utterances")
    if utterances:
        out: list[Segment] = []
        for u in utterances:
            start = _ms(u.get("start"))
            end = max(_ms(u.get("end")), start + 0.001)
            label = u.get("speaker") or 0
            text = str(u.get("text", "")).strip()
            out.append(Segment(start=start, end=end, text=text, speaker=f"S{label}"))
        return out

    words = result.get("words")
    if words:
        return group_words(words, group_secs=group_secs)

    return []


def group_words(
    words: list[dict[str, Any]], group_secs: float = 5.0, speaker: str = "S0"
) -> list[Segment]:
    """Greedily accumulate words until the group's span exceeds ``group_secs``."""
    out: list[Segment] = []
    cur: list[str] = []
    cur_start = cur_end = 0.0

    def flush() -> None:
        end = max(cur_end, cur_start + 0.001)
        out.append(Segment(start=cur_start, end=end, text=" ".join(cur), speaker=speaker))

    for w in words:
        if not cur:
            cur_start = _ms(w.get("start"))
        cur_end = _ms(w.get("end"))
        cur.append(str(w.get("text", "")))
        if cur_end - cur_start > group_secs:
            flush()
            cur = []
    if cur:
        flush()
    return out


def transcribe_assemblyai(
    audio: bytes,
    api_key: str,
    *,
    poll_interval: float = 2.0,
    max_attempts: int = 300,
    timeout_s: float | None = None,
    cancel_event: threading.Event | None = None,
    word_group_secs: float = 5.0,
    http: httpx.Client | None = None,
) -> TranscriptionResult:
    """Transcribe audio bytes with diarization, blocking until the job is terminal."""
    job = TranscriptionJob(
        AssemblyAIClient(api_key, http=http),
        poll_interval=poll_interval,
        max_attempts=max_attempts,
        timeout_s=timeout_s,
        cancel_event=cancel_event,
        word_group_secs=word_group_secs,
    )
    return job.run(audio)
