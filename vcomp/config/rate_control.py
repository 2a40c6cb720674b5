"""Helpers for parsing bitrate and file-size strings used in presets and the CLI."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Dict

_VALUE_PATTERN = re.compile(r"^(?P<number>\d+(?:\.\d+)?)(?P<suffix>[A-Za-z]*)$")
_RATE_MULTIPLIERS: Dict[str, float] = {
    "": 1.0,
    "bps": 1.0,
    "k": 1_000.0,
    "kbps": 1_000.0,
    "m": 1_000_000.0,
    "mbps": 1_000_000.0,
    "g": 1_000_000_000.0,
    "gbps": 1_000_000_000.0,
}
# File sizes follow the binary convention used by file managers (1 MB = 1024 KB).
_SIZE_MULTIPLIERS: Dict[str, int] = {
    "": 1,
    "b": 1,
    "k": 1024,
    "kb": 1024,
    "kib": 1024,
    "m": 1024 ** 2,
    "mb": 1024 ** 2,
    "mib": 1024 ** 2,
    "g": 1024 ** 3,
    "gb": 1024 ** 3,
    "gib": 1024 ** 3,
}


@dataclass(frozen=True)
class ParsedRateValue:
    raw: str
    bps: float

    @property
    def kbps(self) -> float:
        return self.bps / 1_000.0


def _format_float(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def format_bps_human(bps: int) -> str:
    if bps >= 1_000_000:
        return f"{_format_float(bps / 1_000_000)} Mbps"
    if bps >= 1_000:
        return f"{_format_float(bps / 1_000)} kbps"
    return f"{bps} bps"


def format_kbps_arg(kbps: float) -> str:
    """Formats a kbps value the way ffmpeg expects it on the command line (`-b:v 850k`)."""
    return f"{int(round(kbps))}k"


def _split(raw_value: Any, what: str):
    text = str(raw_value).strip()
    if not text:
        raise ValueError(f"{what} cannot be empty.")
    match = _VALUE_PATTERN.fullmatch(text.replace(" ", ""))
    if not match:
        raise ValueError(f"Invalid {what.lower()} '{text}'.")
    return text, float(match.group("number")), match.group("suffix").lower()


def parse_rate_value(raw_value: Any) -> ParsedRateValue:
    text, number, suffix = _split(raw_value, "Rate value")
    if suffix not in _RATE_MULTIPLIERS:
        raise ValueError(
            f"Unsupported bitrate suffix '{suffix}' in '{text}'. Supported: k, M, Mbps, bps."
        )
    bitrate_bps = number * _RATE_MULTIPLIERS[suffix]
    if bitrate_bps <= 0:
        raise ValueError(f"Bitrate must be > 0 (got '{text}').")
    return ParsedRateValue(raw=text, bps=bitrate_bps)


def parse_size_bytes(raw_value: Any) -> int:
    """Parses `25M`, `1.5GB`, `700k` or a plain byte count into bytes."""
    text, number, suffix = _split(raw_value, "Size")
    if suffix not in _SIZE_MULTIPLIERS:
        raise ValueError(f"Unsupported size suffix '{suffix}' in '{text}'. Supported: K, M, G.")
    size = int(round(number * _SIZE_MULTIPLIERS[suffix]))
    if size <= 0:
        raise ValueError(f"Size must be > 0 (got '{text}').")
    return size


def format_size_human(size: int) -> str:
    value = float(size)
    for unit in ["B", "KB", "MB", "GB"]:
        if value < 1024.0:
            return f"{value:.1f}{unit}"
        value /= 1024.0
    return f"{value:.1f}TB"
