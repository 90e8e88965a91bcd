from __future__ import annotations

from typing import Optional

from .models import Stage


class PipelineError(Exception):
    """
    Base failure descriptor for a conversion.

    Every subclass records the stage the failure is attributed to, the exit
    code when a process exit caused it, and the captured diagnostic text.
    """

    default_stage: Stage = Stage.FORWARDING

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[Stage] = None,
        exit_code: Optional[int] = None,
        diagnostics: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.exit_code = exit_code
        self.diagnostics = diagnostics

    @property
    def kind(self) -> str:
        return type(self).__name__

    def describe(self) -> str:
        """Human-readable report: message, stage, exit code, diagnostics."""
        parts = [
            self.message,
            "",
            f"Error: {self.kind}",
            f"Stage: {self.stage.value}",
        ]
        if self.exit_code is not None:
            parts.append(f"Exit code: {self.exit_code}")
        if self.diagnostics:
            parts.extend(["", "Diagnostics:", self.diagnostics])
        return "\n".join(parts)

    def __str__(self) -> str:
        return self.message


class SpawnError(PipelineError):
    """A child process could not be started."""

    default_stage = Stage.PRODUCER


class ForwardingError(PipelineError):
    """Reading from the Producer or writing to the Consumer failed."""

    default_stage = Stage.FORWARDING


class ConsumerReadError(PipelineError):
    """Collecting the Consumer's output failed."""

    default_stage = Stage.CONSUMER_READ


class ProcessExitError(PipelineError):
    """A child exited with a non-zero status or was killed by a signal."""

    default_stage = Stage.CONSUMER


class PipelineTimeoutError(PipelineError, TimeoutError):
    """A bounded stage did not finish in time. Also caught by ``except TimeoutError``."""

    default_stage = Stage.TIMEOUT


class PipelineCancelledError(PipelineError):
    """The caller cancelled the conversion."""

    default_stage = Stage.CANCELLED


class SourceFetchError(PipelineError):
    """The source could not be staged locally."""

    default_stage = Stage.SOURCE
