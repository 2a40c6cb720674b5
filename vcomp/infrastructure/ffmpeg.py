import os
import shutil
import subprocess
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
from vcomp.config.rate_control import format_kbps_arg
from vcomp.domain.errors import BinaryNotFound, SpawnError
from vcomp.domain.models import Job, Preset


@dataclass(frozen=True)
class EncodeStage:
    """One encoder invocation of a job and the slice of overall progress it covers."""

    args: List[str]
    label: str = "encode"
    progress_offset: float = 0.0
    progress_span: float = 100.0

    def overall_progress(self, stage_percent: float) -> float:
        return self.progress_offset + self.progress_span * stage_percent / 100.0


def build_scale_filter(max_width: Optional[int], max_height: Optional[int]) -> Optional[str]:
    """Scaling filter that only ever shrinks the picture.

    Both bounds: fit inside the box keeping the aspect ratio. One bound: limit
    that axis and let ffmpeg derive the other (kept even). No bounds: no filter.
    """
    if max_width and max_height:
        return f"scale='min({max_width},iw)':'min({max_height},ih)':force_original_aspect_ratio=decrease"
    if max_width:
        return f"scale='min({max_width},iw)':-2"
    if max_height:
        return f"scale=-2:'min({max_height},ih)'"
    return None


def _even(value: float) -> int:
    return max(2, int(round(value / 2.0)) * 2)


def scaled_dimensions(
    width: int,
    height: int,
    max_width: Optional[int],
    max_height: Optional[int],
) -> Tuple[int, int]:
    """Output size produced by `build_scale_filter` for a `width`x`height` source."""
    if max_width and max_height:
        ratio = min(1.0, max_width / width, max_height / height)
        if ratio >= 1.0:
            return width, height
        return int(round(width * ratio)), int(round(height * ratio))
    if max_width:
        out_width = min(max_width, width)
        return out_width, _even(height * out_width / width)
    if max_height:
        out_height = min(max_height, height)
        return _even(width * out_height / height), out_height
    return width, height


def resolve_binary(configured: Optional[str], default: str = "ffmpeg") -> str:
    """Returns an executable path for the encoder or raises BinaryNotFound."""
    candidate = configured or default
    if os.path.sep in candidate or (os.path.altsep and os.path.altsep in candidate):
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
        raise BinaryNotFound(candidate)
    found = shutil.which(candidate)
    if found is None:
        raise BinaryNotFound(candidate)
    return found


class FFmpegAdapter:
    """Builds ffmpeg argument vectors for a job and spawns the encoder."""

    def __init__(self, ffmpeg_path: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path
        self.binary = ffmpeg_path or "ffmpeg"
        self.logger = logging.getLogger(__name__)

    def _video_args(self, preset: Preset, video_kbps: Optional[int] = None) -> List[str]:
        video = preset.video
        args = ["-c:v", video.codec]
        if video_kbps is not None:
            args.extend(["-b:v", format_kbps_arg(video_kbps)])
        else:
            if video.crf is not None:
                args.extend(["-crf", str(video.crf)])
            if video.bitrate:
                args.extend(["-b:v", video.bitrate])
        args.extend(["-preset", video.preset])
        if video.profile:
            args.extend(["-profile:v", video.profile])
        if video.level:
            args.extend(["-level", video.level])
        args.extend(["-pix_fmt", video.pixel_format])

        scale = build_scale_filter(video.max_width, video.max_height)
        if scale:
            args.extend(["-vf", scale])
        if video.fps:
            args.extend(["-r", f"{video.fps:g}"])
        return args

    def _audio_args(self, preset: Preset) -> List[str]:
        if not preset.keeps_audio:
            return ["-an"]
        audio = preset.audio
        args = ["-c:a", audio.codec, "-b:a", audio.bitrate]
        if audio.sample_rate:
            args.extend(["-ar", str(audio.sample_rate)])
        if audio.channels:
            args.extend(["-ac", str(audio.channels)])
        return args

    def _input_args(self, job: Job, binary: Optional[str] = None) -> List[str]:
        return [
            binary or self.binary,
            "-y",  # Destination uniqueness is resolved at submission
            "-hide_banner",
            "-i", str(job.input_path),
        ]

    def build_command(self, job: Job, binary: Optional[str] = None) -> List[str]:
        """Constructs the single-pass ffmpeg command line."""
        preset = job.preset
        cmd = self._input_args(job, binary)
        if preset.keeps_video:
            cmd.extend(self._video_args(preset))
        else:
            cmd.append("-vn")
        cmd.extend(self._audio_args(preset))
        cmd.append(str(job.output_path))
        return cmd

    def build_two_pass_commands(
        self,
        job: Job,
        video_kbps: int,
        passlog_prefix: Path,
        binary: Optional[str] = None,
    ) -> Tuple[List[str], List[str]]:
        """First pass analyses video only into the pass log; second pass writes the real output.

        Both passes get the same video arguments (filters, frame rate, profile):
        the pass log only matches a second pass that encodes the same frames.
        """
        preset = job.preset
        video_args = self._video_args(preset, video_kbps=video_kbps)
        first = self._input_args(job, binary) + video_args + [
            "-pass", "1",
            "-passlogfile", str(passlog_prefix),
            "-an",
            "-f", "null",
            os.devnull,
        ]
        second = self._input_args(job, binary) + video_args + [
            "-pass", "2",
            "-passlogfile", str(passlog_prefix),
        ] + self._audio_args(preset) + [str(job.output_path)]
        return first, second

    def resolve(self) -> str:
        return resolve_binary(self.ffmpeg_path)

    def plan_stages(self, job: Job) -> List[EncodeStage]:
        """Encoder invocations for a job. Raises BinaryNotFound before anything runs."""
        binary = self.resolve()
        if job.target_size_mode and job.planned_video_kbps is not None:
            first, second = self.build_two_pass_commands(
                job, job.planned_video_kbps, passlog_prefix(job), binary=binary
            )
            return [
                EncodeStage(args=first, label="pass 1", progress_offset=0.0, progress_span=50.0),
                EncodeStage(args=second, label="pass 2", progress_offset=50.0, progress_span=50.0),
            ]
        return [EncodeStage(args=self.build_command(job, binary=binary))]

    def spawn(self, args: List[str]) -> subprocess.Popen:
        """Starts the encoder with its diagnostic stream piped for progress parsing."""
        self.logger.debug(f"FFMPEG_CMD: {' '.join(args)}")
        try:
            return subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                errors="replace",
                bufsize=1,
            )
        except FileNotFoundError as exc:
            raise BinaryNotFound(args[0]) from exc
        except OSError as exc:
            raise SpawnError(f"Failed to start {args[0]}: {exc}") from exc


def passlog_prefix(job: Job) -> Path:
    return job.output_path.with_name(f".{job.output_path.stem}-{job.id[:8]}-passlog")


def cleanup_passlogs(job: Job):
    """Removes the statistics files written by a two-pass encode."""
    prefix = passlog_prefix(job)
    for path in prefix.parent.glob(f"{prefix.name}*"):
        try:
            path.unlink()
        except OSError:
            pass
