"""Exception hierarchy for the conversion pipeline."""

from typing import Optional


class BcaError(Exception):
    """Base class for all BCA errors."""


class ConfigurationError(BcaError):
    """Fatal setup problem (ffmpeg path, input directory, config file)."""


class InvocationError(BcaError):
    """A single ffmpeg invocation failed; the run carries on."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.returncode = returncode


class CheckpointError(BcaError):
    """Checkpoint file exists but cannot be parsed."""
