"""Target-size bitrate planning for two-pass encodes."""

from typing import Optional
from vcomp.config.rate_control import parse_rate_value
from vcomp.domain.errors import ConfigValidationError
from vcomp.domain.models import Preset

MIN_VIDEO_KBPS = 300
MAX_VIDEO_KBPS = 8000
DEFAULT_AUDIO_KBPS = 128.0


def plan_video_bitrate_kbps(
    target_size_bytes: int,
    duration_seconds: float,
    audio_bitrate_kbps: float,
    min_kbps: float = MIN_VIDEO_KBPS,
    max_kbps: float = MAX_VIDEO_KBPS,
) -> float:
    """Video bitrate (kbps) that makes audio + video fill `target_size_bytes`.

    kbps here means 1024 bits per second, matching sizes given in KB/MB.
    The result is clamped to [min_kbps, max_kbps].
    """
    if target_size_bytes <= 0:
        raise ConfigValidationError(f"Target size must be > 0 (got {target_size_bytes})")
    if duration_seconds <= 0:
        raise ConfigValidationError(f"Duration must be > 0 to plan a bitrate (got {duration_seconds})")
    total_kbps = target_size_bytes * 8 / 1024 / duration_seconds
    return max(min_kbps, min(max_kbps, total_kbps - audio_bitrate_kbps))


def audio_bitrate_kbps(preset: Preset) -> float:
    if not preset.keeps_audio:
        return 0.0
    try:
        return parse_rate_value(preset.audio.bitrate).kbps
    except ValueError as exc:
        raise ConfigValidationError(f"Invalid audio bitrate in preset '{preset.id}': {exc}") from exc


def plan_for_preset(target_size_bytes: int, duration_seconds: Optional[float], preset: Preset) -> int:
    """Rounded video kbps for a preset; requires a real (probed) duration."""
    if not duration_seconds or duration_seconds <= 0:
        raise ConfigValidationError("Target-size mode needs the probed duration of the input file")
    kbps = plan_video_bitrate_kbps(target_size_bytes, duration_seconds, audio_bitrate_kbps(preset))
    return int(round(kbps))
