"""Domain events for the audio conversion pipeline.

Events flow through the EventBus from the orchestrator (publisher) to the UI
layer (subscribers), so the pipeline never touches rendering code. Progress
events are advisory: nothing in the pipeline reacts to them.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel
from .models import ConversionJob, RunReport


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class JobEvent(Event):
    """Base class for events related to a specific conversion job."""

    job: ConversionJob


class JobStarted(JobEvent):
    """Emitted when ffmpeg is launched for a job."""

    pass


class JobCompleted(JobEvent):
    """Emitted when a job converts successfully."""

    duration_seconds: float = 0.0


class JobFailed(JobEvent):
    """Emitted when ffmpeg exits non-zero; the job is not retried."""

    error_message: str


class JobInterrupted(JobEvent):
    """Emitted when cancellation stops a job; it stays pending for resume."""

    pass


class ProgressUpdated(Event):
    """Emitted after every job resolves, whatever the outcome."""

    completed: int
    total: int
    file_name: Optional[str] = None
    error: Optional[str] = None


class DiscoveryFinished(Event):
    """Emitted once the job set is known (fresh scan or checkpoint)."""

    files_found: int
    extensions: List[str] = []
    input_dir: Optional[Path] = None
    resumed: bool = False


class RunStarted(Event):
    total: int
    completed: int
    threads: int


class RequestShutdown(Event):
    """Emitted when the user presses the stop key."""

    pass


class ActionMessage(Event):
    """Short feedback line for the UI."""

    message: str


class ProcessingFinished(Event):
    """Emitted when the run leaves RUNNING, either completed or cancelled."""

    report: RunReport
