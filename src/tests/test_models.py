"""
Tests for segment and speaker-config helpers.
"""

import pytest

from voicedub.errors import ValidationError
from voicedub.models import (
    SpeakerConfig,
    distinct_speakers,
    freeze_speaker_configs,
    merge_speaker_configs,
    segments_from_dicts,
    segments_to_dicts,
)


def test_distinct_speakers_in_first_appearance_order(three_segments):
    assert distinct_speakers(three_segments) == ["S0", "S1"]


def test_merge_fills_unconfigured_speakers_with_default(three_segments):
    given = SpeakerConfig(speaker="S1", provider="elevenlabs", voice_id="Adam")

    configs = merge_speaker_configs(three_segments, [given])

    assert configs["S1"] is given
    assert (configs["S0"].provider, configs["S0"].voice_id) == ("openai", "alloy")


def test_merge_ignores_configs_for_absent_speakers(three_segments):
    configs = merge_speaker_configs(three_segments, [SpeakerConfig(speaker="S9")])
    assert set(configs) == {"S0", "S1"}


def test_frozen_configs_are_read_only(three_segments):
    frozen = freeze_speaker_configs(merge_speaker_configs(three_segments), three_segments)

    with pytest.raises(TypeError):
        frozen["S2"] = SpeakerConfig(speaker="S2")


def test_freeze_reports_missing_speakers(three_segments):
    with pytest.raises(ValidationError, match="S0, S1"):
        freeze_speaker_configs({}, three_segments)


def test_unknown_strategy_is_rejected():
    with pytest.raises(ValidationError):
        SpeakerConfig(speaker="S0", strategy="mimic")


def test_segment_dicts_round_trip(three_segments):
    assert segments_from_dicts(segments_to_dicts(three_segments)) == three_segments


@pytest.mark.parametrize("end", [1.0, 0.5])
def test_segment_dicts_must_end_after_start(end):
    with pytest.raises(ValidationError, match="Segment 1"):
        segments_from_dicts(
            [{"start": 0, "end": 1, "text": "ok"}, {"start": 1.0, "end": end, "text": "bad"}]
        )
