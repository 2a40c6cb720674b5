import typer
from pathlib import Path
from typing import Dict, List, Optional
from rich.console import Console
from rich.table import Table
from vcomp.config.loader import load_config
from vcomp.config.models import AppConfig, MAX_PARALLEL_LIMIT
from vcomp.config.presets import available_presets, get_preset, output_extension, render_output_name
from vcomp.config.rate_control import format_bps_human, format_size_human, parse_rate_value, parse_size_bytes
from vcomp.domain.errors import CompressorError, ConfigValidationError
from vcomp.domain.models import JobConfig, PresetOverrides
from vcomp.infrastructure.event_bus import EventBus
from vcomp.infrastructure.ffprobe import FFprobeAdapter
from vcomp.infrastructure.history_store import YamlHistoryStore
from vcomp.infrastructure.logging import setup_logging
from vcomp.pipeline.job_manager import JobManager
from vcomp.pipeline.progress import format_duration
from vcomp.ui.dashboard import Dashboard
from vcomp.ui.manager import UIManager
from vcomp.ui.state import UIState

app = typer.Typer(help="vcomp - batch video compression on top of ffmpeg")

DEFAULT_CONFIG_PATH = Path("conf/vcomp.yaml")
DEFAULT_HISTORY_PATH = Path.home() / ".vcomp" / "history.yaml"


def _fail(message: str, code: int = 1):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=code)


def _load_app_config(config_path: Optional[Path]) -> AppConfig:
    """Explicit --config must exist; the default location is optional."""
    try:
        if config_path is not None:
            return load_config(config_path)
        if DEFAULT_CONFIG_PATH.exists():
            return load_config(DEFAULT_CONFIG_PATH)
        return AppConfig()
    except (FileNotFoundError, ConfigValidationError) as exc:
        _fail(str(exc))


def _history_store(config: AppConfig) -> YamlHistoryStore:
    path = Path(config.general.history_path) if config.general.history_path else DEFAULT_HISTORY_PATH
    return YamlHistoryStore(path, max_items=config.general.history_max_items)


def _video_overrides(crf: Optional[int], max_width: Optional[int], max_height: Optional[int]) -> Optional[PresetOverrides]:
    video: Dict[str, int] = {}
    if crf is not None:
        video["crf"] = crf
    if max_width is not None:
        video["max_width"] = max_width
    if max_height is not None:
        video["max_height"] = max_height
    return PresetOverrides(video=video) if video else None


@app.command()
def compress(
    files: List[Path] = typer.Argument(..., help="Media files to compress"),
    preset_id: Optional[str] = typer.Option(None, "--preset", "-p", help="Preset id (see `vcomp presets`)"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Directory for compressed files"),
    target_size: Optional[str] = typer.Option(None, "--target-size", "-s", help="Target file size, e.g. 25M"),
    jobs: Optional[int] = typer.Option(
        None, "--jobs", "-j", min=1, max=MAX_PARALLEL_LIMIT, help="Override max parallel jobs"
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    crf: Optional[int] = typer.Option(None, "--crf", min=0, max=63, help="Override constant rate factor"),
    max_width: Optional[int] = typer.Option(None, "--max-width", min=2, help="Downscale wider videos"),
    max_height: Optional[int] = typer.Option(None, "--max-height", min=2, help="Downscale taller videos"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug/--no-debug", help="Enable verbose debug logging"),
):
    """Compress media files with a preset, several at a time."""
    config = _load_app_config(config_path)
    if jobs is not None:
        config.general.max_parallel_jobs = jobs
    if log_path is not None:
        config.general.log_path = str(log_path)
    if debug:
        config.general.debug = True

    try:
        preset = get_preset(preset_id or config.general.default_preset, config.presets)
        target_bytes = parse_size_bytes(target_size) if target_size is not None else None
    except ValueError as exc:
        _fail(str(exc))

    overrides = _video_overrides(crf, max_width, max_height)
    if output_dir is None and config.general.default_output_dir:
        output_dir = Path(config.general.default_output_dir)

    log_dir = output_dir or files[0].resolve().parent
    log_path_value = Path(config.general.log_path) if config.general.log_path else None
    logger = setup_logging(log_dir, debug=config.general.debug, log_path=log_path_value)
    logger.info(f"vcomp started: files={len(files)}, preset={preset.id}, jobs={config.general.max_parallel_jobs}")

    bus = EventBus()
    ui_state = UIState()
    ui_state.max_parallel_jobs = config.general.max_parallel_jobs
    UIManager(bus, ui_state)

    manager = JobManager(
        settings=config.general,
        event_bus=bus,
        history=_history_store(config),
        prober=FFprobeAdapter(config.general.ffprobe_path),
    )
    rejected: List[str] = []

    try:
        with Dashboard(ui_state), manager:
            for input_path in files:
                out_dir = output_dir or input_path.resolve().parent
                output_name = render_output_name(
                    input_path, config.general.output_naming_pattern, output_extension(preset)
                )
                try:
                    manager.submit(JobConfig(
                        input_path=input_path,
                        output_path=out_dir / output_name,
                        preset=preset,
                        target_size=target_bytes,
                        overrides=overrides,
                    ))
                except CompressorError as exc:
                    logger.error(f"Rejected {input_path}: {exc}")
                    rejected.append(f"{input_path}: {exc}")
            manager.wait()
    except KeyboardInterrupt:
        manager.shutdown()
        typer.secho("\n✓ Compression stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    for line in rejected:
        typer.secho(f"Skipped {line}", fg=typer.colors.YELLOW, err=True)
    summary = (
        f"Completed: {ui_state.completed_count}, failed: {ui_state.failed_count}, "
        f"cancelled: {ui_state.cancelled_count}, skipped: {len(rejected)}"
    )
    logger.info(summary)
    ok = ui_state.failed_count == 0 and not rejected
    typer.secho(summary, fg=typer.colors.GREEN if ok else typer.colors.RED)
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def presets(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """List built-in and configured presets."""
    config = _load_app_config(config_path)
    table = Table(title="Presets")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Video")
    table.add_column("Audio")
    for preset in available_presets(config.presets):
        if preset.keeps_video:
            video = preset.video
            quality = f"crf {video.crf}" if video.crf is not None else ("2-pass" if video.two_pass else video.bitrate or "")
            limit = f" ≤{video.max_width or '-'}x{video.max_height or '-'}" if video.max_width or video.max_height else ""
            video_text = f"{video.codec} {quality}{limit}"
        else:
            video_text = "removed"
        if preset.keeps_audio:
            audio_text = f"{preset.audio.codec} {format_bps_human(int(parse_rate_value(preset.audio.bitrate).bps))}"
        else:
            audio_text = "removed"
        table.add_row(preset.id, preset.name, video_text, audio_text)
    Console().print(table)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", min=0, help="Number of entries to show (0 = all)"),
    clear: bool = typer.Option(False, "--clear", help="Delete all history entries"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Show recent compression results."""
    store = _history_store(_load_app_config(config_path))
    if clear:
        store.clear()
        typer.secho("History cleared", fg=typer.colors.GREEN)
        return

    items = store.get_history(limit)
    if not items:
        typer.echo("No history yet")
        return

    table = Table(title=f"History ({store.path})")
    table.add_column("When")
    table.add_column("File", no_wrap=True)
    table.add_column("Preset")
    table.add_column("Size", justify="right")
    table.add_column("Ratio", justify="right", no_wrap=True)
    table.add_column("Time", justify="right")
    table.add_column("Result")
    for item in items:
        if item.get("success"):
            size = f"{format_size_human(item['original_size'])} → {format_size_human(item['compressed_size'])}"
            ratio = f"{item['compression_ratio']:.1%}"
            result = "[green]ok[/green]"
        else:
            size = format_size_human(item.get("original_size", 0))
            ratio = "-"
            result = f"[red]{item.get('error') or 'failed'}[/red]"
        table.add_row(
            str(item.get("timestamp", "")),
            Path(str(item.get("input_path", ""))).name,
            str(item.get("preset", "")),
            size,
            ratio,
            format_duration(item.get("duration_ms", 0) / 1000.0),
            result,
        )
    console = Console()
    console.print(table)

    stats = store.get_statistics()
    console.print(
        f"Total: {stats.total_jobs} job(s), [green]{stats.successful_jobs} ok[/green], "
        f"[red]{stats.failed_jobs} failed[/red] | "
        f"{format_size_human(stats.total_original_size)} → {format_size_human(stats.total_compressed_size)} "
        f"(saved {format_size_human(max(0, stats.bytes_saved))}) | "
        f"avg ratio {stats.average_compression_ratio:.1%}",
        soft_wrap=True,
    )
    recent = store.recent_presets()
    if recent:
        console.print(f"Recent presets: {', '.join(recent)}", soft_wrap=True)


@app.command()
def probe(
    file: Path = typer.Argument(..., help="Media file to inspect"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
):
    """Print duration and streams of a media file."""
    config = _load_app_config(config_path)
    if not file.is_file():
        _fail(f"Input file does not exist: {file}")
    try:
        result = FFprobeAdapter(config.general.ffprobe_path).probe(file)
    except CompressorError as exc:
        _fail(str(exc))

    typer.echo(f"{file.name}: duration {format_duration(result.duration_seconds)} ({result.duration_seconds:.2f}s)")
    for stream in result.streams:
        if stream.codec_type == "video":
            detail = f"{stream.width}x{stream.height}"
        elif stream.codec_type == "audio":
            detail = f"{stream.sample_rate or '?'} Hz, {stream.channels or '?'} ch"
        else:
            detail = ""
        typer.echo(f"  #{stream.index} {stream.codec_type}: {stream.codec_name} {detail}".rstrip())


if __name__ == "__main__":
    app()
