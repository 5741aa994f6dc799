from datetime import datetime
from bca.infrastructure.event_bus import EventBus
from bca.ui.state import UIState
from bca.domain.events import (
    DiscoveryFinished, RunStarted,
    JobStarted, JobCompleted, JobFailed, JobInterrupted,
    ProgressUpdated, RequestShutdown, ActionMessage, ProcessingFinished,
)


class UIManager:
    """Subscribes to EventBus and updates UIState."""

    def __init__(self, bus: EventBus, state: UIState):
        self.bus = bus
        self.state = state
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(DiscoveryFinished, self.on_discovery_finished)
        self.bus.subscribe(RunStarted, self.on_run_started)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(JobInterrupted, self.on_job_interrupted)
        self.bus.subscribe(ProgressUpdated, self.on_progress)
        self.bus.subscribe(RequestShutdown, self.on_shutdown_request)
        self.bus.subscribe(ActionMessage, self.on_action_message)
        self.bus.subscribe(ProcessingFinished, self.on_processing_finished)

    def on_discovery_finished(self, event: DiscoveryFinished):
        with self.state._lock:
            self.state.resumed = event.resumed

    def on_run_started(self, event: RunStarted):
        with self.state._lock:
            self.state.total = event.total
            self.state.completed_count = event.completed
            self.state.completed_at_start = event.completed
            self.state.current_threads = event.threads
            self.state.processing_start_time = datetime.now()

    def on_job_started(self, event: JobStarted):
        self.state.add_active(event.job.source_path.name)

    def on_job_completed(self, event: JobCompleted):
        with self.state._lock:
            self.state.remove_active(event.job.source_path.name)
            self.state.last_job_seconds = event.duration_seconds
            self.state.recent_files.appendleft(event.job.source_path.name)

    def on_job_failed(self, event: JobFailed):
        with self.state._lock:
            self.state.remove_active(event.job.source_path.name)
            self.state.failed_count += 1

    def on_job_interrupted(self, event: JobInterrupted):
        with self.state._lock:
            self.state.remove_active(event.job.source_path.name)
            self.state.interrupted_count += 1

    def on_progress(self, event: ProgressUpdated):
        with self.state._lock:
            # Workers publish out of order; the counter only moves forward
            self.state.completed_count = max(self.state.completed_count, event.completed)
            self.state.total = event.total

    def on_shutdown_request(self, event: RequestShutdown):
        with self.state._lock:
            self.state.shutdown_requested = True

    def on_action_message(self, event: ActionMessage):
        self.state.set_last_action(event.message)

    def on_processing_finished(self, event: ProcessingFinished):
        with self.state._lock:
            self.state.finished = True
            self.state.cancelled = event.report.cancelled
            self.state.completed_count = event.report.completed
