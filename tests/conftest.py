import stat
import sys
import threading
import time
import pytest
from typing import Callable, Dict, Optional
from bca.domain.errors import InvocationError
from bca.domain.models import ConversionJob, JobStatus, RunConfig
from bca.infrastructure.checkpoint import CheckpointStore
from bca.infrastructure.event_bus import EventBus


# ============================================================================
# Fake transcoder
# ============================================================================

class FakeFFmpeg:
    """Stands in for FFmpegAdapter: records calls and in-flight concurrency.

    ``fail`` maps file names to error messages, ``delay`` keeps each job busy
    (cut short by cancellation), ``on_convert`` runs at the start of each job.
    """

    def __init__(
        self,
        fail: Optional[Dict[str, str]] = None,
        delay: float = 0.0,
        on_convert: Optional[Callable[[ConversionJob], None]] = None,
    ):
        self.fail = fail or {}
        self.delay = delay
        self.on_convert = on_convert
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def convert(self, job: ConversionJob, run_config: RunConfig, cancel_event=None) -> JobStatus:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append(job.source_path.name)
        try:
            if self.on_convert:
                self.on_convert(job)
            if self.delay:
                if cancel_event is not None:
                    if cancel_event.wait(self.delay):
                        return JobStatus.INTERRUPTED
                else:
                    time.sleep(self.delay)
            if job.source_path.name in self.fail:
                raise InvocationError(self.fail[job.source_path.name], returncode=1)
            output_path = job.output_path(run_config.output_dir)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(b"converted")
            return JobStatus.COMPLETED
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def fake_ffmpeg_factory():
    """Returns the FakeFFmpeg class so tests can configure failures/delays."""
    return FakeFFmpeg


# ============================================================================
# EventBus / store fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()


@pytest.fixture
def checkpoint_store(tmp_path):
    return CheckpointStore(tmp_path / "conf" / "checkpoint.yaml")


# ============================================================================
# File System Fixtures
# ============================================================================

@pytest.fixture
def input_dir(tmp_path):
    d = tmp_path / "input"
    d.mkdir()
    return d


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "output"


@pytest.fixture
def audio_tree(input_dir):
    """Ten audio files, some in nested folders, plus files that must be ignored."""
    files = []
    for i in range(6):
        f = input_dir / f"track{i:02d}.mp3"
        f.write_bytes(b"audio " * 10)
        files.append(f)
    album = input_dir / "album" / "cd1"
    album.mkdir(parents=True)
    for name in ("a.FLAC", "b.wav", "c.m4a", "d.Ogg"):
        f = album / name
        f.write_bytes(b"audio " * 10)
        files.append(f)
    (input_dir / "cover.jpg").write_bytes(b"jpg")
    (input_dir / "notes.txt").write_text("ignore me")
    return sorted(files)


@pytest.fixture
def run_config(input_dir, output_dir):
    return RunConfig(
        input_dir=input_dir,
        output_dir=output_dir,
        target_format=".mp3",
        quality="3",
        threads=2,
    )


@pytest.fixture
def make_jobs(run_config):
    def _make(paths, config: Optional[RunConfig] = None):
        return [ConversionJob.for_source(p, config or run_config) for p in paths]
    return _make


# ============================================================================
# Fake ffmpeg executable (real subprocess, no audio codecs involved)
# ============================================================================

FAKE_FFMPEG_SCRIPT = """#!/bin/sh
src=""
prev=""
for arg in "$@"; do
  if [ "$prev" = "-i" ]; then src="$arg"; fi
  prev="$arg"
  dest="$arg"
done
case "$(basename "$src")" in
  *bad*) echo "Invalid data found when processing input" >&2; exit 1 ;;
  *silent*) exit 3 ;;
  *slow*) exec sleep 30 ;;
esac
cp "$src" "$dest"
"""


@pytest.fixture
def fake_ffmpeg_executable(tmp_path):
    if sys.platform == "win32":
        pytest.skip("fake ffmpeg is a POSIX shell script")
    script = tmp_path / "bin" / "ffmpeg"
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text(FAKE_FFMPEG_SCRIPT)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
