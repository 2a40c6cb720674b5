import pytest
from vcomp.config.presets import get_preset
from vcomp.domain.errors import ConfigValidationError
from vcomp.pipeline.bitrate_planner import (
    MAX_VIDEO_KBPS,
    MIN_VIDEO_KBPS,
    audio_bitrate_kbps,
    plan_for_preset,
    plan_video_bitrate_kbps,
)


def test_small_target_is_clamped_to_minimum():
    # 5 MB over 100 s is 409.6 kbps total, 281.6 kbps after audio
    assert plan_video_bitrate_kbps(5 * 1024 * 1024, 100, 128) == MIN_VIDEO_KBPS


def test_plain_plan():
    # 50 MB over 100 s: 4096 kbps total
    assert plan_video_bitrate_kbps(50 * 1024 * 1024, 100, 96) == pytest.approx(4000.0)


def test_large_target_is_clamped_to_maximum():
    assert plan_video_bitrate_kbps(4 * 1024 ** 3, 60, 128) == MAX_VIDEO_KBPS


@pytest.mark.parametrize("size,duration", [(0, 10), (-5, 10), (1024, 0), (1024, -1)])
def test_invalid_inputs(size, duration):
    with pytest.raises(ConfigValidationError):
        plan_video_bitrate_kbps(size, duration, 128)


def test_audio_bitrate_of_presets():
    assert audio_bitrate_kbps(get_preset("github-pr")) == pytest.approx(128.0)
    assert audio_bitrate_kbps(get_preset("high-compression")) == pytest.approx(96.0)


def test_plan_for_preset_rounds_and_needs_duration():
    preset = get_preset("target-size")
    assert plan_for_preset(25 * 1024 * 1024, 120, preset) == 1579
    with pytest.raises(ConfigValidationError):
        plan_for_preset(25 * 1024 * 1024, None, preset)
