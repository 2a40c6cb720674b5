"""Built-in presets and preset merging."""

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from pydantic import ValidationError
from vcomp.domain.errors import ConfigValidationError
from vcomp.domain.models import AudioSettings, Preset, PresetOverrides, VideoSettings

DEFAULT_PRESETS: List[Preset] = [
    Preset(
        id="github-pr",
        name="GitHub PR (standard)",
        video=VideoSettings(
            codec="libx264", crf=23, preset="veryfast", profile="high",
            pixel_format="yuv420p", max_width=1920, max_height=1080, fps=30,
        ),
        audio=AudioSettings(codec="aac", bitrate="128k"),
    ),
    Preset(
        id="high-compression",
        name="High compression",
        video=VideoSettings(
            codec="libx264", crf=28, preset="veryfast", profile="high",
            pixel_format="yuv420p", max_width=1280, max_height=720, fps=30,
        ),
        audio=AudioSettings(codec="aac", bitrate="96k"),
    ),
    Preset(
        id="quality-priority",
        name="Quality priority",
        video=VideoSettings(codec="libx264", crf=20, preset="slow", profile="high", pixel_format="yuv420p"),
        audio=AudioSettings(codec="aac", bitrate="192k"),
    ),
    Preset(
        id="audio-only",
        name="Audio only",
        audio=AudioSettings(codec="aac", bitrate="128k"),
        remove_video=True,
    ),
    Preset(
        id="target-size",
        name="Target size",
        video=VideoSettings(codec="libx264", preset="veryfast", profile="high", pixel_format="yuv420p", two_pass=True),
        audio=AudioSettings(codec="aac", bitrate="128k"),
    ),
]


def available_presets(extra: Iterable[Preset] = ()) -> List[Preset]:
    """Built-in presets followed by user presets; a user preset replaces a built-in with the same id."""
    extra = list(extra)
    overridden = {p.id for p in extra}
    return [p for p in DEFAULT_PRESETS if p.id not in overridden] + extra


def get_preset(preset_id: str, extra: Iterable[Preset] = ()) -> Preset:
    for preset in available_presets(extra):
        if preset.id == preset_id:
            return preset
    raise ConfigValidationError(f"Unknown preset: {preset_id}")


def _merge_section(base: Optional[Dict[str, Any]], update: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if update is None:
        return base
    merged = dict(base or {})
    merged.update(update)
    return merged


def merge_preset(preset: Preset, overrides: Optional[PresetOverrides]) -> Preset:
    """Returns a new preset with `overrides` applied field by field."""
    if overrides is None:
        return preset

    data = preset.model_dump()
    changes = overrides.model_dump(exclude_unset=True, exclude_none=True)
    for section in ("video", "audio"):
        if section in changes:
            data[section] = _merge_section(data.get(section), changes.pop(section))
    data.update(changes)

    try:
        return Preset.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(f"Invalid preset overrides for '{preset.id}': {exc}") from exc


def render_output_name(input_path: Path, pattern: str, extension: Optional[str] = None) -> str:
    """Applies an output naming pattern such as `{name}_compressed.{ext}`."""
    ext = extension if extension is not None else input_path.suffix
    return pattern.replace("{name}", input_path.stem).replace("{ext}", ext.lstrip("."))


def output_extension(preset: Preset) -> str:
    """Container for a preset's output: audio-only encodes go to .m4a, everything else to .mp4."""
    return "m4a" if not preset.keeps_video else "mp4"
