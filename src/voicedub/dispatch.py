"""
Synthesis dispatch: resolve voices once, then synthesize every segment.
"""

import asyncio
import logging
from collections.abc import Mapping
from functools import partial

import httpx
from openai import OpenAI
from tqdm import tqdm
from tqdm.asyncio import tqdm as tqdm_asyncio

from .config import KeyName, PipelineSettings, require_key
from .errors import UpstreamError
from .models import Segment, SpeakerConfig, SynthesizedPart, freeze_speaker_configs
from .tts import clip_duration_ms, elevenlabs_clone_voice, elevenlabs_tts_speak, tts_speak_openai
from .voices import resolve_voices

logger = logging.getLogger("voicedub")


def part_filename(index: int) -> str:
    return f"seg_{index:04d}.wav"


class SynthesisDispatcher:
    """Synthesizes translated segments with per-speaker voices.

    Credentials for every provider in use are resolved when the dispatcher
    is prepared, so a missing key aborts before any clip is produced.
    """

    def __init__(
        self,
        settings: PipelineSettings | None = None,
        key_overrides: Mapping[str, str] | None = None,
        *,
        openai_client: OpenAI | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.key_overrides = key_overrides
        self.openai_client = openai_client
        self.http = http
        self.elevenlabs_key: str | None = None
        self.configs: Mapping[str, SpeakerConfig] = {}
        self.voices: dict[str, str] = {}

    def prepare(self, segments: list[Segment], configs: Mapping[str, SpeakerConfig]) -> None:
        """Freeze speaker configs, check credentials and resolve voices."""
        used = {seg.speaker for seg in segments}
        frozen = freeze_speaker_configs(configs, segments)
        self.configs = {spk: cfg for spk, cfg in frozen.items() if spk in used}
        providers = {cfg.provider for cfg in self.configs.values()}

        if "openai" in providers and self.openai_client is None:
            self.openai_client = OpenAI(api_key=require_key(KeyName.OPENAI, self.key_overrides))
        if "elevenlabs" in providers:
            self.elevenlabs_key = require_key(KeyName.ELEVENLABS, self.key_overrides)

        self.voices = resolve_voices(self.configs, cloner=self._clone)

    def _clone(self, name: str, sample: bytes, filename: str) -> str:
        try:
            return elevenlabs_clone_voice(
                self.elevenlabs_key, name, sample, filename, http=self.http
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"voice clone request failed: {e}", provider="elevenlabs") from e

    def synthesize_one(self, index: int, seg: Segment) -> SynthesizedPart:
        cfg = self.configs[seg.speaker]
        voice = self.voices[seg.speaker]
        try:
            if cfg.provider == "elevenlabs":
                audio = elevenlabs_tts_speak(
                    self.elevenlabs_key,
                    voice,
                    seg.text,
                    model_id=self.settings.elevenlabs_model_id,
                    http=self.http,
                )
            else:
                audio = tts_speak_openai(
                    self.openai_client,
                    seg.text,
                    self.settings.tts_model,
                    voice,
                    instructions=self.settings.tts_instructions,
                )
        except httpx.HTTPError as e:
            raise UpstreamError(f"TTS request failed: {e}", provider=cfg.provider) from e

        slot_ms = int((seg.end - seg.start) * 1000)
        try:
            clip_ms = clip_duration_ms(audio)
        except Exception as e:
            raise UpstreamError(
                f"segment {index} returned undecodable audio ({e})", provider=cfg.provider
            ) from e
        if clip_ms > slot_ms:
            logger.debug(f"segment {index} runs {clip_ms - slot_ms}ms past its source slot")
        return SynthesizedPart(filename=part_filename(index), audio=audio, start=seg.start)

    def synthesize(self, segments: list[Segment]) -> list[SynthesizedPart]:
        """Synthesize segments one after another, in order."""
        return [
            self.synthesize_one(i, seg)
            for i, seg in enumerate(tqdm(segments, desc="TTS segments", disable=not segments))
        ]

    async def synthesize_async(
        self, segments: list[Segment], max_concurrent: int = 5
    ) -> list[SynthesizedPart]:
        """Synthesize segments concurrently; results come back in segment order."""
        semaphore = asyncio.Semaphore(max(1, max_concurrent))

        async def process_single(index: int, seg: Segment) -> SynthesizedPart:
            async with semaphore:
                return await asyncio.to_thread(partial(self.synthesize_one, index, seg))

        tasks = [process_single(i, seg) for i, seg in enumerate(segments)]
        if not tasks:
            return []
        return list(await tqdm_asyncio.gather(*tasks, desc="TTS segments (async)"))

    def run(
        self, segments: list[Segment], configs: Mapping[str, SpeakerConfig]
    ) -> list[SynthesizedPart]:
        """Prepare, then dispatch every segment. No partial output on failure."""
        self.prepare(segments, configs)
        if not segments:
            return []
        logger.info(f"Synthesizing {len(segments)} segments for {len(self.configs)} speakers …")
        if self.settings.max_concurrent > 1:
            return asyncio.run(self.synthesize_async(segments, self.settings.max_concurrent))
        return self.synthesize(segments)
