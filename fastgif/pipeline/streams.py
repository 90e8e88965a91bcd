from __future__ import annotations

import asyncio
import logging
import re

from .errors import ConsumerReadError, ForwardingError
from .models import DiagnosticLog
from .process import ChildProcess

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DRAIN_CHUNK_SIZE = 4096

# ffmpeg redraws its progress line with bare carriage returns
_LINE_BREAK = re.compile(rb"\r\n|\r|\n")


async def forward(producer: ChildProcess, consumer: ChildProcess, chunk_size: int = DEFAULT_CHUNK_SIZE) -> int:
    """
    Relay the Producer's stdout into the Consumer's stdin, byte for byte.

    Closes the Consumer's stdin when the Producer reaches EOF, and also when the
    relay fails. Returns the number of bytes forwarded.
    """
    source = producer.stdout
    sink = consumer.stdin
    total = 0

    logger.info("Starting pipe: %s stdout -> %s stdin", producer.name, consumer.name)
    try:
        while True:
            try:
                chunk = await source.read(chunk_size)
            except OSError as exc:
                raise ForwardingError(f"Failed to read {producer.name} output: {exc}") from exc
            if not chunk:
                break

            try:
                sink.write(chunk)
                await sink.drain()
            except OSError as exc:
                raise ForwardingError(
                    f"Failed to pipe data from {producer.name} to {consumer.name}: {exc}"
                ) from exc
            total += len(chunk)
    finally:
        await consumer.close_stdin()

    logger.info("Piped %s bytes from %s to %s", total, producer.name, consumer.name)
    return total


async def collect(consumer: ChildProcess, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """Read the Consumer's stdout to EOF and return everything it wrote."""
    buffer = bytearray()
    stream = consumer.stdout
    while True:
        try:
            chunk = await stream.read(chunk_size)
        except OSError as exc:
            raise ConsumerReadError(f"Failed to read {consumer.name} output: {exc}") from exc
        if not chunk:
            break
        buffer.extend(chunk)

    logger.info("Collected %s bytes from %s", len(buffer), consumer.name)
    return bytes(buffer)


def _emit(log: DiagnosticLog, raw: bytes) -> None:
    line = raw.decode("utf-8", errors="replace")
    log.append(line)
    logger.debug("[%s stderr] %s", log.name, line)


async def drain(stream: asyncio.StreamReader, log: DiagnosticLog) -> None:
    """
    Read a diagnostic stream to EOF, appending each line to ``log``.

    Never raises on I/O errors: the log is marked truncated instead.
    """
    pending = b""
    try:
        while True:
            chunk = await stream.read(DRAIN_CHUNK_SIZE)
            if not chunk:
                break
            pending += chunk
            # A trailing \r may be the first half of a \r\n split across reads
            held = pending.endswith(b"\r")
            *complete, pending = _LINE_BREAK.split(pending[:-1] if held else pending)
            if held:
                pending += b"\r"
            for raw in complete:
                _emit(log, raw)
    except OSError as exc:
        log.truncated = True
        logger.warning("Lost %s stderr before EOF: %s", log.name, exc)
    finally:
        *complete, tail = _LINE_BREAK.split(pending)
        for raw in complete:
            _emit(log, raw)
        # The empty remainder after a final line break is not a line
        if tail:
            _emit(log, tail)

    logger.debug("%s stderr stream finished (%s lines)", log.name, len(log.lines))
