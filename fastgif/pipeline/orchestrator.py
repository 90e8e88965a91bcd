"""
Streaming two-process pipeline.

    Producer stdout ──Forwarder──> Consumer stdin
    Consumer stdout ──Collector──> result bytes
    both stderr     ──Drains─────> DiagnosticLog

All four tasks start before any of them is awaited. The join never
short-circuits: every task and both process exits are awaited before a
verdict is computed, and the most terminal failure wins:

    consumer exit > producer exit > collector read > forwarding

A timeout or a caller cancellation overrides everything, since the exit
statuses of processes we killed say nothing about the input.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Iterable, List, Optional, Tuple

from fastgif.config import Settings

from .errors import (
    ConsumerReadError,
    ForwardingError,
    PipelineCancelledError,
    PipelineError,
    PipelineTimeoutError,
    ProcessExitError,
)
from .models import PipelineOutcome, PipelineRequest, ProcessReport, Stage
from .process import ChildProcess, launch
from .streams import collect, drain, forward

logger = logging.getLogger(__name__)

# Lowest to highest; the highest-ranked recorded failure becomes the verdict
_PRECEDENCE = {
    Stage.FORWARDING: 1,
    Stage.CONSUMER_READ: 2,
    Stage.PRODUCER: 3,
    Stage.CONSUMER: 4,
}


async def convert(
    request: PipelineRequest,
    cancel: Optional[asyncio.Event] = None,
    *,
    settings: Optional[Settings] = None,
) -> PipelineOutcome:
    """
    Run one Producer/Consumer conversion and return its single outcome.

    ``cancel`` may be set at any time by the caller (e.g. on client
    disconnect); both processes are then terminated and reaped and a
    ``cancelled`` failure is returned. Cancelling the coroutine itself runs
    the same cleanup and re-raises.
    """
    settings = settings or Settings()
    reports: List[ProcessReport] = []
    supervisor = asyncio.ensure_future(_supervise(request, settings, reports))

    if cancel is None:
        return await supervisor

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({supervisor, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        supervisor.cancel()
        await asyncio.wait({supervisor})
        raise
    finally:
        waiter.cancel()

    if not supervisor.done():
        logger.info("Cancelling conversion of %s at caller request", request.name)
        supervisor.cancel()
        await asyncio.wait({supervisor})

    if supervisor.cancelled():
        return PipelineOutcome.failure(
            PipelineCancelledError(f"Conversion of {request.name} was cancelled"),
            reports,
        )
    return supervisor.result()


async def _supervise(request: PipelineRequest, settings: Settings, reports: List[ProcessReport]) -> PipelineOutcome:
    logger.info("Converting %s", request.name)
    children: List[ChildProcess] = []
    data: Optional[bytes] = None
    error: Optional[PipelineError] = None

    try:
        async with AsyncExitStack() as stack:
            producer = await stack.enter_async_context(
                launch(request.producer_argv, stage=Stage.PRODUCER, terminate_grace=settings.terminate_grace)
            )
            children.append(producer)
            consumer = await stack.enter_async_context(
                launch(
                    request.consumer_argv,
                    stage=Stage.CONSUMER,
                    pipe_stdin=True,
                    terminate_grace=settings.terminate_grace,
                )
            )
            children.append(consumer)

            data, error = await _run(producer, consumer, settings)
    except PipelineError as exc:
        # Only spawn failures escape _run; the stack has already reaped anything started
        error = exc
    finally:
        reports.extend(child.report() for child in children)

    if error is not None:
        logger.error(
            "Conversion of %s failed at stage %s (exit code %s): %s",
            request.name,
            error.stage.value,
            error.exit_code,
            error.message,
        )
        return PipelineOutcome.failure(error, reports)

    logger.info("Converted %s into %s bytes", request.name, len(data))
    return PipelineOutcome.success(data, reports)


async def _run(
    producer: ChildProcess,
    consumer: ChildProcess,
    settings: Settings,
) -> Tuple[Optional[bytes], Optional[PipelineError]]:
    forwarder = asyncio.create_task(forward(producer, consumer, settings.chunk_size))
    collector = asyncio.create_task(collect(consumer, settings.chunk_size))
    drains = [
        asyncio.create_task(drain(producer.stderr, producer.log)),
        asyncio.create_task(drain(consumer.stderr, consumer.log)),
    ]
    tasks = [forwarder, collector, *drains]

    candidates: List[PipelineError] = []
    exited: List[ChildProcess] = []
    timeout: Optional[PipelineTimeoutError] = None
    data: Optional[bytes] = None

    try:
        # 1. Forwarder
        failure, expired = await _join(forwarder, settings.forward_timeout)
        if expired:
            timeout = PipelineTimeoutError(
                f"Forwarding from {producer.name} to {consumer.name} "
                f"did not finish within {settings.forward_timeout}s"
            )
            await _stop(producer, consumer)
            await _cancel(forwarder)
        elif failure is not None:
            candidates.append(failure)
            await _stop(producer)

        # 2. Collector
        failure, expired = await _join(collector, None if timeout else settings.collect_timeout)
        if expired:
            timeout = PipelineTimeoutError(
                f"Collecting {consumer.name} output did not finish within {settings.collect_timeout}s"
            )
            await _stop(producer, consumer)
            await _cancel(collector)
        elif failure is not None:
            candidates.append(failure)
            await _stop(consumer)
        elif not collector.cancelled():
            data = collector.result()

        # 3-4. Process exits, Producer first
        for child in (producer, consumer):
            returncode = await child.wait()
            logger.info("%s process exited with status %s", child.name, returncode)
            if returncode != 0 and not child.terminated:
                exited.append(child)

        # 5. Drains, best effort
        await _finish_drains(drains, (producer, consumer), settings.terminate_grace)
    finally:
        await _cancel(*tasks)

    # 6. Verdict, built only now that the logs are complete
    if timeout is not None:
        timeout.diagnostics = _diagnostics(producer, consumer)
        return None, timeout

    for child in exited:
        candidates.append(
            ProcessExitError(
                _exit_message(child),
                stage=child.stage,
                exit_code=child.returncode,
            )
        )

    if not candidates:
        if data is None:
            raise RuntimeError("Collector finished without a result or a failure")
        return data, None

    verdict = max(candidates, key=lambda exc: _PRECEDENCE[exc.stage])
    first, second = (consumer, producer) if verdict.stage is Stage.CONSUMER else (producer, consumer)
    verdict.diagnostics = _diagnostics(first, second)
    for other in candidates:
        if other is not verdict:
            logger.info("Superseded %s failure: %s", other.stage.value, other.message)
    return None, verdict


async def _join(task: asyncio.Task, timeout: Optional[float]) -> Tuple[Optional[PipelineError], bool]:
    """
    Wait for ``task`` without cancelling it.

    Returns (failure, expired). Anything other than a PipelineError escaping
    the task is a bug and is re-raised.
    """
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if not done:
        return None, True
    if task.cancelled():
        return None, False

    exc = task.exception()
    if exc is None:
        return None, False
    if isinstance(exc, (ForwardingError, ConsumerReadError)):
        return exc, False
    raise exc


async def _stop(*children: ChildProcess) -> None:
    await asyncio.gather(*(child.stop() for child in children))


async def _cancel(*tasks: asyncio.Task) -> None:
    pending = [task for task in tasks if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.wait(pending)
    for task in tasks:
        # A task can fail on its own once its processes are force-stopped
        if not task.cancelled() and task.exception() is not None:
            logger.debug("%s task ended with %r", task.get_coro().__qualname__, task.exception())


async def _finish_drains(drains: List[asyncio.Task], children: Iterable[ChildProcess], grace: float) -> None:
    # A grandchild can inherit stderr and keep it open after the child exits
    done, pending = await asyncio.wait(drains, timeout=grace)
    for task in done:
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Diagnostic drain failed: %s", task.exception())
    if pending:
        await _cancel(*pending)
        for child, task in zip(children, drains):
            if task in pending:
                child.log.truncated = True
                logger.warning("%s stderr still open after exit; log truncated", child.name)


def _exit_message(child: ChildProcess) -> str:
    returncode = child.returncode
    if returncode is not None and returncode < 0:
        return f"{child.name} process was killed by signal {-returncode}"
    return f"{child.name} process failed with exit code: {returncode}"


def _diagnostics(first: ChildProcess, second: ChildProcess) -> str:
    return "\n\n".join(f"[{child.name} stderr]\n{child.log.text() or '(empty)'}" for child in (first, second))
