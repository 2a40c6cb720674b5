"""Progress extraction from ffmpeg's diagnostic (stderr) stream.

ffmpeg rewrites its status line with carriage returns, e.g.::

    frame=  240 fps= 48 q=28.0 size=    1024kB time=00:00:10.00 bitrate= 838.9kbits/s speed=1.99x

`ProgressParser` consumes the stream in arbitrary chunks, splits it into
records on CR/LF and scans each record once. Memory stays bounded: only an
unterminated remainder (capped) and a short tail of recent lines are kept.
"""

import re
from collections import deque
from typing import Deque, Optional
from pydantic import BaseModel

FALLBACK_DURATION_SECONDS = 300.0
MAX_PENDING_CHARS = 4096
TAIL_LINES = 40
ERROR_TAIL_CHARS = 500

_TIME_RE = re.compile(r"time=\s*(-?\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_SPEED_RE = re.compile(r"speed=\s*([0-9.]+)x")
_FPS_RE = re.compile(r"fps=\s*([0-9.]+)")
_BITRATE_RE = re.compile(r"bitrate=\s*([0-9.]+[kmg]?bits/s)")
_SIZE_RE = re.compile(r"L?size=\s*([0-9]+[kmgKMG]i?B)")
_RECORD_SPLIT_RE = re.compile(r"[\r\n]+")


class ProgressFields(BaseModel):
    """Fields found in one progress record; absent markers stay None."""

    time: Optional[str] = None
    elapsed_seconds: Optional[float] = None
    speed: Optional[str] = None
    fps: Optional[str] = None
    bitrate: Optional[str] = None
    size: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())


def parse_progress_text(text: str) -> ProgressFields:
    """Extracts the most recent value of every progress marker found in `text`."""
    fields = ProgressFields()

    times = _TIME_RE.findall(text)
    if times:
        h, m, s = times[-1]
        # ffmpeg prints e.g. time=-00:00:00.04 before the first frame is out
        if not h.startswith("-"):
            seconds = int(h) * 3600 + int(m) * 60 + float(s)
            fields.time = f"{h}:{m}:{s}"
            fields.elapsed_seconds = seconds

    for attr, pattern, suffix in (
        ("speed", _SPEED_RE, "x"),
        ("fps", _FPS_RE, ""),
        ("bitrate", _BITRATE_RE, ""),
        ("size", _SIZE_RE, ""),
    ):
        matches = pattern.findall(text)
        if matches:
            setattr(fields, attr, f"{matches[-1]}{suffix}")
    return fields


def progress_percent(elapsed_seconds: float, total_seconds: float) -> float:
    """Encoded time as a percentage of the expected duration, clamped to [0, 100]."""
    if total_seconds <= 0:
        return 0.0
    return max(0.0, min(100.0, elapsed_seconds / total_seconds * 100.0))


def estimate_eta(elapsed_wall_seconds: float, progress: float) -> Optional[float]:
    """Seconds remaining, or None while nothing has been encoded yet."""
    if progress <= 0:
        return None
    return elapsed_wall_seconds / progress * (100.0 - progress)


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class ProgressParser:
    """Bounded, line-oriented incremental parser for one encoder process."""

    def __init__(self, max_pending_chars: int = MAX_PENDING_CHARS, tail_lines: int = TAIL_LINES):
        self.max_pending_chars = max_pending_chars
        self._pending = ""
        self._tail: Deque[str] = deque(maxlen=tail_lines)
        self.latest = ProgressFields()

    def feed(self, chunk: str) -> Optional[ProgressFields]:
        """Consumes a chunk; returns merged fields if a complete record carried progress."""
        if not chunk:
            return None
        data = self._pending + chunk
        records = _RECORD_SPLIT_RE.split(data)
        self._pending = records.pop()
        if len(self._pending) > self.max_pending_chars:
            # A record that never terminates is noise; keep only its end.
            self._pending = self._pending[-self.max_pending_chars:]

        updated = False
        for record in records:
            if self._consume(record):
                updated = True
        return self.latest if updated else None

    def flush(self) -> Optional[ProgressFields]:
        """Consumes whatever is left once the stream has ended."""
        record, self._pending = self._pending, ""
        if record and self._consume(record):
            return self.latest
        return None

    def _consume(self, record: str) -> bool:
        record = record.strip()
        if not record:
            return False
        self._tail.append(record)
        fields = parse_progress_text(record)
        if fields.is_empty:
            return False
        self.latest = self.latest.model_copy(update=fields.model_dump(exclude_none=True))
        return True

    def tail(self, max_chars: int = ERROR_TAIL_CHARS) -> str:
        """Trailing slice of the diagnostic output, for error reports."""
        text = "\n".join(list(self._tail) + ([self._pending.strip()] if self._pending.strip() else []))
        return text[-max_chars:]
