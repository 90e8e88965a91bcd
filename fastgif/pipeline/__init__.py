"""
Streaming conversion pipeline.

This package provides:

- A process launcher with scoped release (terminate, reap, close)
- The stream tasks: forwarder, collector, diagnostic drains
- The orchestrator that joins them into one PipelineOutcome
- The ffmpeg / gifski command builders

Nothing in this package talks to Flask.
"""

from .commands import build_request
from .errors import (
    ConsumerReadError,
    ForwardingError,
    PipelineCancelledError,
    PipelineError,
    PipelineTimeoutError,
    ProcessExitError,
    SourceFetchError,
    SpawnError,
)
from .models import DiagnosticLog, PipelineOutcome, PipelineRequest, ProcessReport, Stage
from .orchestrator import convert

__all__ = [
    "build_request",
    "convert",
    "ConsumerReadError",
    "DiagnosticLog",
    "ForwardingError",
    "PipelineCancelledError",
    "PipelineError",
    "PipelineOutcome",
    "PipelineRequest",
    "PipelineTimeoutError",
    "ProcessExitError",
    "ProcessReport",
    "SourceFetchError",
    "SpawnError",
    "Stage",
]
