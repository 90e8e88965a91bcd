from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from .errors import PipelineError


class Stage(str, Enum):
    """Where in the pipeline a failure was attributed."""

    PRODUCER = "producer"
    CONSUMER = "consumer"
    FORWARDING = "forwarding"
    CONSUMER_READ = "consumer-read"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    SOURCE = "source"


@dataclass(frozen=True)
class PipelineRequest:
    """
    One conversion job.

    Fields:
        source: URL or local path the Producer reads from.
        producer_argv: Full argument vector for the first-stage tool.
        consumer_argv: Full argument vector for the second-stage tool.
        label: Optional name used in log lines (e.g. the request path).
    """

    source: str
    producer_argv: Tuple[str, ...]
    consumer_argv: Tuple[str, ...]
    label: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept any sequence but store tuples so the request stays immutable
        object.__setattr__(self, "producer_argv", tuple(self.producer_argv))
        object.__setattr__(self, "consumer_argv", tuple(self.consumer_argv))
        if not self.producer_argv:
            raise ValueError("producer_argv must not be empty")
        if not self.consumer_argv:
            raise ValueError("consumer_argv must not be empty")

    @property
    def name(self) -> str:
        return self.label or self.source


@dataclass
class DiagnosticLog:
    """Lines read from one child's stderr, in arrival order."""

    name: str
    lines: List[str] = field(default_factory=list)
    truncated: bool = False

    def append(self, line: str) -> None:
        self.lines.append(line)

    def text(self) -> str:
        body = "\n".join(self.lines)
        if self.truncated:
            body += "\n[diagnostic stream truncated]"
        return body


@dataclass(frozen=True)
class ProcessReport:
    """Final state of one spawned child, recorded after it was reaped."""

    stage: Stage
    name: str
    pid: int
    returncode: Optional[int]
    terminated: bool = False


@dataclass
class PipelineOutcome:
    """
    The single result of a conversion: either ``data`` or ``error``.

    ``processes`` lists every child that was spawned for the request, after
    reaping, so callers can confirm nothing was left running.
    """

    data: Optional[bytes] = None
    error: Optional["PipelineError"] = None
    processes: List[ProcessReport] = field(default_factory=list)

    def __post_init__(self) -> None:
        if (self.data is None) == (self.error is None):
            raise ValueError("PipelineOutcome needs exactly one of data or error")

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: bytes, processes: Sequence[ProcessReport] = ()) -> "PipelineOutcome":
        return cls(data=bytes(data), processes=list(processes))

    @classmethod
    def failure(cls, error: "PipelineError", processes: Sequence[ProcessReport] = ()) -> "PipelineOutcome":
        return cls(error=error, processes=list(processes))

    def unwrap(self) -> bytes:
        """Return the payload or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.data
