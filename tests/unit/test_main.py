from pathlib import Path
from unittest.mock import MagicMock
from typer.testing import CliRunner

from vcomp import main as vcomp_main
from vcomp.domain.errors import ProbeError
from vcomp.domain.models import HistoryEntry, ProbeResult, StreamInfo
from vcomp.infrastructure.history_store import YamlHistoryStore

runner = CliRunner()


class DummyManager:
    created = []

    def __init__(self, settings, event_bus, history, prober):
        self.settings = settings
        self.history = history
        self.submitted = []
        DummyManager.created.append(self)

    def submit(self, config):
        if not Path(config.input_path).exists():
            raise vcomp_main.CompressorError(f"Input file does not exist: {config.input_path}")
        self.submitted.append(config)
        return f"job{len(self.submitted)}"

    def wait(self, timeout=None):
        return True

    def shutdown(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def patch_engine(monkeypatch):
    DummyManager.created = []
    monkeypatch.setattr(vcomp_main, "JobManager", DummyManager)
    monkeypatch.setattr(vcomp_main, "setup_logging", lambda *args, **kwargs: MagicMock())


def test_compress_builds_job_configs(tmp_path, monkeypatch, config_yaml_path):
    patch_engine(monkeypatch)
    clip = tmp_path / "clip.mov"
    clip.write_bytes(b"data")
    out_dir = tmp_path / "out"

    result = runner.invoke(vcomp_main.app, [
        "compress", str(clip),
        "--config", str(config_yaml_path),
        "--output-dir", str(out_dir),
        "--preset", "github-pr",
        "--target-size", "25M",
        "--jobs", "4",
        "--crf", "30",
        "--max-width", "1280",
    ])

    assert result.exit_code == 0, result.output
    manager = DummyManager.created[0]
    assert manager.settings.max_parallel_jobs == 4
    assert isinstance(manager.history, YamlHistoryStore)
    assert manager.history.path == tmp_path / "history.yaml"

    config = manager.submitted[0]
    assert config.output_path == out_dir / "clip_compressed.mp4"
    assert config.preset.id == "github-pr"
    assert config.target_size == 25 * 1024 * 1024
    assert config.overrides.video == {"crf": 30, "max_width": 1280}


def test_compress_uses_config_default_preset(tmp_path, monkeypatch, config_yaml_path):
    patch_engine(monkeypatch)
    clip = tmp_path / "talk.mp4"
    clip.write_bytes(b"data")

    result = runner.invoke(vcomp_main.app, ["compress", str(clip), "--config", str(config_yaml_path)])

    assert result.exit_code == 0, result.output
    config = DummyManager.created[0].submitted[0]
    assert config.preset.id == "high-compression"
    assert config.overrides is None
    assert config.output_path == tmp_path / "talk_compressed.mp4"


def test_compress_audio_only_writes_m4a(tmp_path, monkeypatch, config_yaml_path):
    patch_engine(monkeypatch)
    clip = tmp_path / "talk.mp4"
    clip.write_bytes(b"data")

    result = runner.invoke(vcomp_main.app, ["compress", str(clip), "-c", str(config_yaml_path), "-p", "audio-only"])

    assert result.exit_code == 0, result.output
    assert DummyManager.created[0].submitted[0].output_path.name == "talk_compressed.m4a"


def test_compress_reports_rejected_files(tmp_path, monkeypatch, config_yaml_path):
    patch_engine(monkeypatch)

    result = runner.invoke(vcomp_main.app, ["compress", str(tmp_path / "missing.mp4"), "-c", str(config_yaml_path)])

    assert result.exit_code == 1
    assert "Skipped" in result.output
    assert "skipped: 1" in result.output


def test_compress_rejects_bad_options(tmp_path, monkeypatch, config_yaml_path):
    patch_engine(monkeypatch)
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"data")

    result = runner.invoke(vcomp_main.app, ["compress", str(clip), "-c", str(config_yaml_path), "--preset", "nope"])
    assert result.exit_code == 1
    assert "Unknown preset" in result.output

    result = runner.invoke(vcomp_main.app, ["compress", str(clip), "-c", str(config_yaml_path), "--target-size", "huge"])
    assert result.exit_code == 1
    assert "Invalid size" in result.output

    result = runner.invoke(vcomp_main.app, ["compress", str(clip), "-c", str(config_yaml_path), "--jobs", "9"])
    assert result.exit_code != 0
    assert DummyManager.created == []


def test_missing_config_file_exits(tmp_path):
    result = runner.invoke(vcomp_main.app, ["presets", "--config", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_presets_lists_builtin_and_custom(config_yaml_path):
    result = runner.invoke(vcomp_main.app, ["presets", "--config", str(config_yaml_path)])

    assert result.exit_code == 0, result.output
    for preset_id in ("github-pr", "audio-only", "target-size", "tiny"):
        assert preset_id in result.output


def test_history_shows_and_clears(tmp_path, config_yaml_path):
    store = YamlHistoryStore(tmp_path / "history.yaml")
    store.add_item(HistoryEntry(
        input_path=Path("/videos/beach.mov"),
        output_path=Path("/videos/beach_compressed.mp4"),
        preset="github-pr",
        original_size=10 * 1024 * 1024,
        compressed_size=4 * 1024 * 1024,
        compression_ratio=0.4,
        duration_ms=65_000,
        success=True,
    ))

    result = runner.invoke(vcomp_main.app, ["history", "--config", str(config_yaml_path)])
    assert result.exit_code == 0, result.output
    assert "beach.mov" in result.output
    assert "40.0%" in result.output

    result = runner.invoke(vcomp_main.app, ["history", "--clear", "--config", str(config_yaml_path)])
    assert result.exit_code == 0
    assert store.get_history() == []

    result = runner.invoke(vcomp_main.app, ["history", "--config", str(config_yaml_path)])
    assert "No history yet" in result.output


def test_history_prints_totals(tmp_path, config_yaml_path):
    store = YamlHistoryStore(tmp_path / "history.yaml")
    for name, success in (("beach", True), ("party", False), ("talk", True)):
        store.add_item(HistoryEntry(
            input_path=Path(f"/videos/{name}.mov"),
            output_path=Path(f"/videos/{name}_compressed.mp4"),
            preset="high-compression" if name == "talk" else "github-pr",
            original_size=10 * 1024 * 1024,
            compressed_size=(2 if name == "talk" else 4) * 1024 * 1024 if success else 0,
            compression_ratio=(0.2 if name == "talk" else 0.4) if success else 0.0,
            duration_ms=65_000,
            success=success,
            error=None if success else "ffmpeg exited with code 1",
        ))

    result = runner.invoke(vcomp_main.app, ["history", "--config", str(config_yaml_path)])

    assert result.exit_code == 0, result.output
    assert "Total: 3 job(s), 2 ok, 1 failed" in result.output
    assert "20.0MB → 6.0MB (saved 14.0MB)" in result.output
    assert "avg ratio 30.0%" in result.output
    assert "Recent presets: high-compression, github-pr" in result.output


def test_probe_prints_streams(tmp_path, monkeypatch):
    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"data")

    class DummyProbe:
        def __init__(self, path=None):
            pass

        def probe(self, file_path):
            return ProbeResult(duration_seconds=75.0, streams=[
                StreamInfo(index=0, codec_type="video", codec_name="h264", width=1280, height=720),
                StreamInfo(index=1, codec_type="audio", codec_name="aac", sample_rate=44100, channels=2),
            ])

    monkeypatch.setattr(vcomp_main, "FFprobeAdapter", DummyProbe)
    result = runner.invoke(vcomp_main.app, ["probe", str(clip)])

    assert result.exit_code == 0, result.output
    assert "duration 1:15" in result.output
    assert "h264 1280x720" in result.output
    assert "44100 Hz, 2 ch" in result.output


def test_probe_errors(tmp_path, monkeypatch):
    result = runner.invoke(vcomp_main.app, ["probe", str(tmp_path / "missing.mp4")])
    assert result.exit_code == 1

    clip = tmp_path / "clip.mp4"
    clip.write_bytes(b"data")

    class BrokenProbe:
        def __init__(self, path=None):
            pass

        def probe(self, file_path):
            raise ProbeError("Invalid media file format")

    monkeypatch.setattr(vcomp_main, "FFprobeAdapter", BrokenProbe)
    result = runner.invoke(vcomp_main.app, ["probe", str(clip)])
    assert result.exit_code == 1
    assert "Invalid media file format" in result.output
