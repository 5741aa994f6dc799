import threading
import pytest

from bca.domain.events import (
    ActionMessage,
    JobCompleted,
    JobFailed,
    JobInterrupted,
    ProcessingFinished,
    ProgressUpdated,
    RequestShutdown,
    RunStarted,
)
from bca.domain.models import Checkpoint, RunPhase
from bca.infrastructure.housekeeping import temp_output_path
from bca.pipeline.orchestrator import Orchestrator


@pytest.fixture
def sources(input_dir):
    paths = []
    for i in range(6):
        p = input_dir / f"song{i}.wav"
        p.write_bytes(b"audio")
        paths.append(p)
    return paths


def _collect(bus, *event_types):
    events = []
    lock = threading.Lock()

    def _append(event):
        with lock:
            events.append(event)

    for event_type in event_types:
        bus.subscribe(event_type, _append)
    return events


def test_run_converts_everything(event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources):
    ffmpeg = fake_ffmpeg_factory()
    orchestrator = Orchestrator(event_bus, ffmpeg, checkpoint_store)

    report = orchestrator.run(run_config, make_jobs(sources))

    assert report.phase == RunPhase.COMPLETED
    assert report.total == 6
    assert report.completed == 6
    assert report.remaining == 0
    assert report.failures == []
    assert sorted(ffmpeg.calls) == sorted(p.name for p in sources)
    for p in sources:
        assert (run_config.output_dir / p.with_suffix(".mp3").name).exists()


def test_run_respects_thread_cap(event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources):
    ffmpeg = fake_ffmpeg_factory(delay=0.05)
    Orchestrator(event_bus, ffmpeg, checkpoint_store).run(run_config, make_jobs(sources))

    assert 1 <= ffmpeg.max_active <= run_config.threads


def test_failure_is_recorded_and_run_continues(
    event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources
):
    failed = _collect(event_bus, JobFailed)
    ffmpeg = fake_ffmpeg_factory(fail={"song2.wav": "Invalid data found"})

    report = Orchestrator(event_bus, ffmpeg, checkpoint_store).run(run_config, make_jobs(sources))

    assert report.phase == RunPhase.COMPLETED
    assert report.completed == 6
    assert len(report.failures) == 1
    assert report.failures[0].path == sources[2]
    assert report.failures[0].error_message == "Invalid data found"
    assert [e.job.source_path for e in failed] == [sources[2]]
    assert len(ffmpeg.calls) == 6


def test_unexpected_adapter_error_counts_as_failure(
    event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources
):
    def _boom(job):
        if job.source_path.name == "song0.wav":
            raise RuntimeError("disk full")

    ffmpeg = fake_ffmpeg_factory(on_convert=_boom)
    report = Orchestrator(event_bus, ffmpeg, checkpoint_store).run(run_config, make_jobs(sources))

    assert report.completed == 6
    assert [f.error_message for f in report.failures] == ["disk full"]


def test_progress_after_every_job(event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources):
    progress = _collect(event_bus, ProgressUpdated)
    ffmpeg = fake_ffmpeg_factory(fail={"song1.wav": "bad"})

    Orchestrator(event_bus, ffmpeg, checkpoint_store).run(run_config, make_jobs(sources))

    assert len(progress) == 6
    assert sorted(e.completed for e in progress) == [1, 2, 3, 4, 5, 6]
    assert all(e.total == 6 for e in progress)
    assert [e.error for e in progress if e.error] == ["bad"]


def test_completed_run_deletes_checkpoint(
    event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources
):
    checkpoint_store.save(Checkpoint.from_run(run_config, total_files=6, remaining=sources))

    Orchestrator(event_bus, fake_ffmpeg_factory(), checkpoint_store).run(run_config, make_jobs(sources))

    assert not checkpoint_store.exists()


def test_cancel_saves_checkpoint(event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources):
    orchestrator = None

    def _cancel_after_second(job):
        if job.source_path.name == "song1.wav":
            orchestrator.request_cancel()

    ffmpeg = fake_ffmpeg_factory(on_convert=_cancel_after_second, delay=0.05)
    orchestrator = Orchestrator(event_bus, ffmpeg, checkpoint_store)
    finished = _collect(event_bus, ProcessingFinished)

    report = orchestrator.run(run_config, make_jobs(sources))

    assert report.phase == RunPhase.CANCELLED
    assert report.checkpoint_saved
    assert finished[0].report == report

    checkpoint = checkpoint_store.load()
    assert checkpoint.total_files == 6
    assert checkpoint.cores == run_config.threads
    assert checkpoint.quality == run_config.quality
    # Nothing past the first two jobs was started
    assert set(ffmpeg.calls) <= {"song0.wav", "song1.wav"}
    assert set(sources[2:]) <= set(checkpoint.remaining_files)
    assert report.completed + report.remaining == 6
    assert len(checkpoint.remaining_files) == report.remaining


def test_interrupted_job_stays_pending(event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources):
    interrupted = _collect(event_bus, JobInterrupted)
    orchestrator = None

    def _cancel(job):
        orchestrator.request_cancel()

    # Delay is cut short by the cancel event, so the job reports INTERRUPTED
    ffmpeg = fake_ffmpeg_factory(on_convert=_cancel, delay=5.0)
    orchestrator = Orchestrator(event_bus, ffmpeg, checkpoint_store)
    single = run_config.model_copy(update={"threads": 1})

    report = orchestrator.run(single, make_jobs(sources, single))

    assert report.phase == RunPhase.CANCELLED
    assert report.completed == 0
    assert [e.job.source_path for e in interrupted] == [sources[0]]
    assert checkpoint_store.load().remaining_files == sources


def test_failed_job_is_not_checkpointed(
    event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources
):
    orchestrator = None

    def _cancel_on_failure(job):
        if job.source_path.name == "song0.wav":
            orchestrator.request_cancel()

    ffmpeg = fake_ffmpeg_factory(fail={"song0.wav": "broken"}, on_convert=_cancel_on_failure)
    orchestrator = Orchestrator(event_bus, ffmpeg, checkpoint_store)
    single = run_config.model_copy(update={"threads": 1})

    report = orchestrator.run(single, make_jobs(sources, single))

    assert report.phase == RunPhase.CANCELLED
    remaining = checkpoint_store.load().remaining_files
    assert sources[0] not in remaining
    assert remaining == sources[1:]
    assert [f.path for f in report.failures] == [sources[0]]


def test_cancel_with_nothing_left_completes(
    event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources
):
    orchestrator = None

    def _cancel_on_last(job):
        if job.source_path.name == "song0.wav":
            orchestrator.request_cancel()

    ffmpeg = fake_ffmpeg_factory(on_convert=_cancel_on_last)
    orchestrator = Orchestrator(event_bus, ffmpeg, checkpoint_store)

    report = orchestrator.run(run_config, make_jobs(sources[:1]))

    assert report.phase == RunPhase.COMPLETED
    assert not checkpoint_store.exists()


def test_request_shutdown_event_cancels(event_bus, checkpoint_store, fake_ffmpeg_factory):
    messages = _collect(event_bus, ActionMessage)
    orchestrator = Orchestrator(event_bus, fake_ffmpeg_factory(), checkpoint_store)

    event_bus.publish(RequestShutdown())
    event_bus.publish(RequestShutdown())

    assert orchestrator.cancel_requested
    assert len(messages) == 1
    assert orchestrator.request_cancel() is False


def test_resume_counts_prior_work(event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources):
    started = _collect(event_bus, RunStarted)
    progress = _collect(event_bus, ProgressUpdated)

    report = Orchestrator(event_bus, fake_ffmpeg_factory(), checkpoint_store).run(
        run_config, make_jobs(sources[4:]), total=10
    )

    assert started[0].total == 10
    assert started[0].completed == 8
    assert max(e.completed for e in progress) == 10
    assert report.completed == 10
    assert report.total == 10


def test_duplicate_jobs_run_once(event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources):
    ffmpeg = fake_ffmpeg_factory()
    jobs = make_jobs(sources[:2] + sources[:2])

    report = Orchestrator(event_bus, ffmpeg, checkpoint_store).run(run_config, jobs)

    assert sorted(ffmpeg.calls) == ["song0.wav", "song1.wav"]
    assert report.completed == 2


def test_stale_temp_outputs_removed(event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources):
    run_config.output_dir.mkdir(parents=True)
    stale = temp_output_path(run_config.output_dir / "song0.mp3")
    stale.write_bytes(b"partial")
    unrelated = temp_output_path(run_config.output_dir / "other.mp3")
    unrelated.write_bytes(b"partial")

    Orchestrator(event_bus, fake_ffmpeg_factory(), checkpoint_store).run(run_config, make_jobs(sources[:1]))

    assert not stale.exists()
    assert unrelated.exists()


def test_completed_event_carries_duration(
    event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, sources
):
    completed = _collect(event_bus, JobCompleted)
    Orchestrator(event_bus, fake_ffmpeg_factory(delay=0.01), checkpoint_store).run(
        run_config, make_jobs(sources[:1])
    )
    assert completed[0].duration_seconds > 0


def test_finished_output_with_tmp_in_name_survives_next_run(
    event_bus, checkpoint_store, fake_ffmpeg_factory, run_config, make_jobs, input_dir
):
    live = input_dir / "live.tmp.wav"
    other = input_dir / "z.wav"
    for p in (live, other):
        p.write_bytes(b"audio")

    Orchestrator(event_bus, fake_ffmpeg_factory(), checkpoint_store).run(run_config, make_jobs([live]), total=2)
    finished = run_config.output_dir / "live.tmp.mp3"
    assert finished.exists()

    report = Orchestrator(event_bus, fake_ffmpeg_factory(), checkpoint_store).run(
        run_config, make_jobs([other]), total=2
    )

    assert report.completed == 2
    assert finished.read_bytes() == b"converted"
