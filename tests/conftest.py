"""
Shared fixtures for the pipeline tests.

Producers and consumers are tiny Python scripts run with the current
interpreter, so the tests exercise real pipes and real process exits without
needing ffmpeg or gifski.
"""

import os
import sys
import textwrap

import pytest

from fastgif.config import Settings


def py(script: str) -> tuple:
    """Argument vector running ``script`` with the test interpreter."""
    return (sys.executable, "-c", textwrap.dedent(script))


ECHO = py(
    """
    import sys
    while True:
        chunk = sys.stdin.buffer.read1(65536)
        if not chunk:
            break
        sys.stdout.buffer.write(chunk)
        sys.stdout.buffer.flush()
    """
)

SLEEPER = py(
    """
    import time
    time.sleep(60)
    """
)


def assert_reaped(outcome) -> None:
    """Every spawned child has an exit status and no longer exists."""
    for report in outcome.processes:
        assert report.returncode is not None, report
        with pytest.raises(ProcessLookupError):
            os.kill(report.pid, 0)


@pytest.fixture
def settings():
    return Settings(
        forward_timeout=15.0,
        collect_timeout=None,
        chunk_size=4096,
        terminate_grace=2.0,
    )
