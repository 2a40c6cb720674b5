import itertools
import os
import queue
import stat
import sys
import threading
import time
import pytest
import yaml
from pathlib import Path
from vcomp.config.models import GeneralConfig
from vcomp.config.presets import get_preset
from vcomp.domain.events import Event
from vcomp.domain.models import ProbeResult, StreamInfo
from vcomp.infrastructure.event_bus import EventBus
from vcomp.infrastructure.ffmpeg import FFmpegAdapter
from vcomp.infrastructure.history_store import InMemoryHistory
from vcomp.pipeline.job_manager import JobManager

# ============================================================================
# Fake encoder process
# ============================================================================

class FakeStderr:
    """Blocking iterator over chunks pushed by the test; ends on `end()`."""

    def __init__(self):
        self._chunks = queue.Queue()
        self.closed = False

    def push(self, text):
        self._chunks.put(text)

    def end(self):
        self._chunks.put(None)

    def __iter__(self):
        while True:
            chunk = self._chunks.get()
            if chunk is None:
                return
            yield chunk

    def close(self):
        self.closed = True


class FakeProcess:
    _pids = itertools.count(4000)

    def __init__(self, args):
        self.args = list(args)
        self.pid = next(self._pids)
        self.stderr = FakeStderr()
        self.returncode = None
        self.signals = []
        self.killed = False
        self._done = threading.Event()

    @property
    def output_path(self) -> Path:
        return Path(self.args[-1])

    def emit(self, text):
        self.stderr.push(text)

    def finish(self, code=0, output_bytes=None):
        if output_bytes is not None and self.args[-1] != os.devnull:
            self.output_path.write_bytes(b"\0" * output_bytes)
        self.returncode = code
        self.stderr.end()
        self._done.set()

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        self._done.wait(timeout)
        return self.returncode

    def kill(self):
        self.killed = True
        if self.returncode is None:
            self.finish(-9)

    def send_signal(self, sig):
        self.signals.append(sig)


class FakeFFmpegAdapter(FFmpegAdapter):
    """Real argument building, fake processes."""

    def __init__(self):
        super().__init__("ffmpeg")
        self.processes = []
        self.spawn_error = None
        self._lock = threading.Lock()

    def resolve(self):
        return "ffmpeg"

    def spawn(self, args):
        if self.spawn_error is not None:
            raise self.spawn_error
        process = FakeProcess(args)
        with self._lock:
            self.processes.append(process)
        return process


class FakeProber:
    def __init__(self, duration=10.0, streams=None):
        self.duration = duration
        self.streams = streams if streams is not None else [
            StreamInfo(index=0, codec_type="video", codec_name="h264", width=1920, height=1080),
            StreamInfo(index=1, codec_type="audio", codec_name="aac", sample_rate=48000, channels=2),
        ]
        self.calls = []

    def probe(self, file_path):
        self.calls.append(file_path)
        return ProbeResult(duration_seconds=self.duration, streams=self.streams)


def wait_until(predicate, timeout=3.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()

# ============================================================================
# Engine fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()


@pytest.fixture
def events(event_bus):
    """Every event published on `event_bus`, in order."""
    received = []
    event_bus.subscribe(Event, received.append)
    return received


@pytest.fixture
def settings():
    return GeneralConfig(max_parallel_jobs=2)


@pytest.fixture
def history():
    return InMemoryHistory()


@pytest.fixture
def fake_ffmpeg():
    return FakeFFmpegAdapter()


@pytest.fixture
def prober():
    return FakeProber()


@pytest.fixture
def manager(settings, event_bus, history, fake_ffmpeg, prober):
    mgr = JobManager(
        settings=settings,
        event_bus=event_bus,
        history=history,
        prober=prober,
        ffmpeg_adapter=fake_ffmpeg,
    )
    yield mgr
    mgr.shutdown(join_timeout=2.0)


@pytest.fixture
def wait_for():
    return wait_until

# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def input_files(tmp_path):
    """Five 1000-byte input files."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    files = []
    for i in range(5):
        f = input_dir / f"clip{i}.mp4"
        f.write_bytes(b"\1" * 1000)
        files.append(f)
    return files


@pytest.fixture
def output_dir(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def github_preset():
    return get_preset("github-pr")


@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "vcomp.yaml"

    content = {
        "general": {
            "max_parallel_jobs": 3,
            "default_preset": "high-compression",
            "history_path": str(tmp_path / "history.yaml"),
            "history_max_items": 10,
        },
        "presets": [
            {
                "id": "tiny",
                "name": "Tiny",
                "video": {"codec": "libx264", "crf": 32, "max_width": 640},
                "audio": {"codec": "aac", "bitrate": "64k"},
            }
        ],
    }

    with open(conf_file, "w") as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# Fake binaries for integration tests
# ============================================================================

FAKE_FFMPEG_SCRIPT = """\
import os
import sys
import time

args = sys.argv[1:]
output = args[-1]
if "-pass" in args:
    # Like libx264: pass 2 must encode the frames pass 1 analysed.
    video_args = " ".join(args[args.index("-c:v"):args.index("-pass")])
    stats = args[args.index("-passlogfile") + 1] + "-0.log"
    if args[args.index("-pass") + 1] == "1":
        with open(stats, "w") as f:
            f.write(video_args)
    else:
        with open(stats) as f:
            if f.read() != video_args:
                sys.stderr.write("Could not open encoder before EOF\\nConversion failed!\\n")
                sys.exit(187)
steps = int(os.environ.get("FAKE_FFMPEG_STEPS", "5"))
delay = float(os.environ.get("FAKE_FFMPEG_DELAY", "0.02"))
sys.stderr.write("Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'input.mp4':\\n")
for i in range(1, steps + 1):
    seconds = 10.0 * i / steps
    sys.stderr.write(
        "frame=%d fps=25 q=28.0 size=%dkB time=00:00:%05.2f bitrate=800.0kbits/s speed=2.0x\\r"
        % (i * 25, i * 10, seconds)
    )
    sys.stderr.flush()
    time.sleep(delay)
code = int(os.environ.get("FAKE_FFMPEG_EXIT", "0"))
if code:
    sys.stderr.write("\\nConversion failed!\\n")
    sys.exit(code)
if output != os.devnull:
    with open(output, "wb") as f:
        f.write(b"\\0" * int(os.environ.get("FAKE_FFMPEG_OUTPUT_BYTES", "400")))
"""

FAKE_FFPROBE_SCRIPT = """\
import json
import sys

json.dump({
    "format": {"duration": "10.000000", "size": "1000", "bit_rate": "800"},
    "streams": [
        {"index": 0, "codec_type": "video", "codec_name": "h264", "width": 1920, "height": 1080},
        {"index": 1, "codec_type": "audio", "codec_name": "aac", "sample_rate": "48000", "channels": 2},
    ],
}, sys.stdout)
"""


def _write_script(path: Path, body: str) -> Path:
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_ffmpeg_bin(tmp_path):
    """Executable stand-in for ffmpeg that prints progress and writes the output file."""
    if sys.platform.startswith("win"):
        pytest.skip("Shebang scripts are not executable on Windows")
    return _write_script(tmp_path / "fake-ffmpeg", FAKE_FFMPEG_SCRIPT)


@pytest.fixture
def fake_ffprobe_bin(tmp_path):
    if sys.platform.startswith("win"):
        pytest.skip("Shebang scripts are not executable on Windows")
    return _write_script(tmp_path / "fake-ffprobe", FAKE_FFPROBE_SCRIPT)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that spawn real subprocesses"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
