import subprocess
import json
from pathlib import Path
from typing import Any, Dict, Optional
from vcomp.domain.errors import BinaryNotFound, ProbeError
from vcomp.domain.models import ProbeResult, StreamInfo


class FFprobeAdapter:
    """Wrapper around ffprobe to extract duration and stream layout."""

    def __init__(self, ffprobe_path: Optional[str] = None):
        self.ffprobe_path = ffprobe_path or "ffprobe"

    @staticmethod
    def _to_float(value: Any) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return 0.0

    @staticmethod
    def _to_int(value: Any) -> Optional[int]:
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @classmethod
    def _parse_duration_tag(cls, value: Any) -> float:
        if value is None:
            return 0.0
        text = str(value).strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            pass
        if ":" in text:
            parts = text.split(":")
            if len(parts) in (2, 3):
                try:
                    parts_f = [float(p) for p in parts]
                except ValueError:
                    return 0.0
                if len(parts_f) == 2:
                    minutes, seconds = parts_f
                    return minutes * 60 + seconds
                hours, minutes, seconds = parts_f
                return hours * 3600 + minutes * 60 + seconds
        return 0.0

    @classmethod
    def _parse_time_base_duration(cls, duration_ts: Any, time_base: Any) -> float:
        if duration_ts is None or time_base is None:
            return 0.0
        time_base_text = str(time_base)
        if "/" not in time_base_text:
            return 0.0
        num_text, den_text = time_base_text.split("/", 1)
        num = cls._to_float(num_text)
        den = cls._to_float(den_text)
        if den == 0:
            return 0.0
        ticks = cls._to_float(duration_ts)
        if ticks <= 0:
            return 0.0
        return ticks * (num / den)

    @classmethod
    def _extract_duration(cls, data: Dict[str, Any]) -> float:
        # Fallback order: format.duration, format tags, stream.duration, stream tags, duration_ts/time_base, size/bitrate
        fmt = data.get("format", {}) or {}
        streams = data.get("streams", []) or []
        primary = next((s for s in streams if s.get("codec_type") == "video"), streams[0] if streams else {})

        duration = cls._to_float(fmt.get("duration"))
        if duration <= 0:
            tags = fmt.get("tags", {}) or {}
            duration = cls._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            duration = cls._to_float(primary.get("duration"))
        if duration <= 0:
            tags = primary.get("tags", {}) or {}
            duration = cls._parse_duration_tag(tags.get("DURATION") or tags.get("duration"))
        if duration <= 0:
            duration = cls._parse_time_base_duration(primary.get("duration_ts"), primary.get("time_base"))
        if duration <= 0:
            bit_rate = cls._to_float(fmt.get("bit_rate") or primary.get("bit_rate"))
            size = cls._to_float(fmt.get("size"))
            if bit_rate > 0 and size > 0:
                duration = (size * 8) / bit_rate
        return duration

    @classmethod
    def parse_output(cls, data: Dict[str, Any]) -> ProbeResult:
        """Converts ffprobe JSON into a ProbeResult."""
        streams = []
        for position, stream in enumerate(data.get("streams", []) or []):
            streams.append(StreamInfo(
                index=cls._to_int(stream.get("index")) or position,
                codec_type=stream.get("codec_type") or "data",
                codec_name=stream.get("codec_name") or "unknown",
                width=cls._to_int(stream.get("width")),
                height=cls._to_int(stream.get("height")),
                sample_rate=cls._to_int(stream.get("sample_rate")),
                channels=cls._to_int(stream.get("channels")),
            ))
        return ProbeResult(duration_seconds=cls._extract_duration(data), streams=streams)

    def probe(self, file_path: Path) -> ProbeResult:
        """Executes ffprobe and parses JSON output."""
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(file_path)
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise BinaryNotFound(self.ffprobe_path) from exc
        if result.returncode != 0:
            raise ProbeError(f"ffprobe failed for {file_path}: {result.stderr.strip()}")

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise ProbeError(f"Failed to parse ffprobe output for {file_path}: {exc}") from exc

        if "format" not in data or "streams" not in data:
            raise ProbeError(f"Invalid media file format: {file_path}")

        return self.parse_output(data)
