"""
Process launcher.

A ChildProcess owns one asyncio subprocess and its pipes. Use it through
``launch()`` so the release path (close stdin, terminate if still running,
reap) runs on every exit branch.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress
from typing import AsyncIterator, Optional, Sequence

from .errors import SpawnError
from .models import DiagnosticLog, ProcessReport, Stage

logger = logging.getLogger(__name__)

DEFAULT_TERMINATE_GRACE = 5.0


class ChildProcess:
    """Owned handle over a spawned child and its standard streams."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        stage: Stage,
        name: str,
        terminate_grace: float = DEFAULT_TERMINATE_GRACE,
    ) -> None:
        self.process = process
        self.stage = stage
        self.name = name
        self.log = DiagnosticLog(name=name)
        self.terminate_grace = terminate_grace
        self.terminated = False
        self._stdin_closed = process.stdin is None

    # ------------------------------------------------------------------ #
    # Streams
    # ------------------------------------------------------------------ #
    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    @property
    def stdin(self) -> asyncio.StreamWriter:
        if self.process.stdin is None:
            raise RuntimeError(f"{self.name} was started without a stdin pipe")
        return self.process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        return self.process.stderr

    @property
    def stdin_closed(self) -> bool:
        return self._stdin_closed

    async def close_stdin(self) -> None:
        """Signal end-of-input. Only the first call has any effect."""
        if self._stdin_closed:
            return
        self._stdin_closed = True

        # Only reachable with a stdin pipe, see __init__
        writer = self.process.stdin
        writer.close()
        try:
            await writer.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as exc:
            # The child already closed its end; its exit status reports why
            logger.debug("%s stdin was already closed by the child: %s", self.name, exc)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def wait(self) -> int:
        return await self.process.wait()

    def terminate(self) -> None:
        """Send SIGTERM if the child is still running and mark it as forced."""
        if self.process.returncode is not None:
            return
        self.terminated = True
        with suppress(ProcessLookupError):
            self.process.terminate()

    async def stop(self) -> int:
        """Terminate the child if it is still running; SIGKILL after the grace period."""
        if self.process.returncode is None:
            self.terminate()
            try:
                await asyncio.wait_for(self.process.wait(), timeout=self.terminate_grace)
            except asyncio.TimeoutError:
                logger.warning("%s (pid %s) ignored SIGTERM, killing", self.name, self.pid)
                with suppress(ProcessLookupError):
                    self.process.kill()
        return await self.process.wait()

    async def release(self) -> None:
        """
        Close stdin, stop the child if it is still running, and reap it.

        Runs on every exit path, so no zombie outlives the request.
        """
        if not self._stdin_closed:
            with suppress(OSError):
                await self.close_stdin()

        if self.process.returncode is None:
            logger.warning("Terminating %s (pid %s) which is still running", self.name, self.pid)
        await self.stop()

    def report(self) -> ProcessReport:
        return ProcessReport(
            stage=self.stage,
            name=self.name,
            pid=self.pid,
            returncode=self.process.returncode,
            terminated=self.terminated,
        )


async def spawn(
    argv: Sequence[str],
    *,
    stage: Stage,
    pipe_stdin: bool = False,
    terminate_grace: float = DEFAULT_TERMINATE_GRACE,
) -> ChildProcess:
    """
    Start ``argv`` with stdout/stderr piped.

    stdin is a pipe when ``pipe_stdin`` is set, otherwise /dev/null.
    Raises SpawnError (attributed to ``stage``) if the OS refuses to start it.
    """
    name = os.path.basename(argv[0])
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if pipe_stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise SpawnError(
            f"Failed to spawn {name} process: {exc}",
            stage=stage,
        ) from exc

    logger.info("Started %s (pid %s)", name, process.pid)
    return ChildProcess(process, stage=stage, name=name, terminate_grace=terminate_grace)


@asynccontextmanager
async def launch(
    argv: Sequence[str],
    *,
    stage: Stage,
    pipe_stdin: bool = False,
    terminate_grace: float = DEFAULT_TERMINATE_GRACE,
) -> AsyncIterator[ChildProcess]:
    """Spawn a child for the duration of the block; release it on exit."""
    child = await spawn(argv, stage=stage, pipe_stdin=pipe_stdin, terminate_grace=terminate_grace)
    try:
        yield child
    finally:
        await child.release()
        logger.info("%s (pid %s) exited with status %s", child.name, child.pid, child.returncode)
