import asyncio

import pytest

from fastgif.pipeline.models import DiagnosticLog
from fastgif.pipeline.streams import drain


class _BrokenReader:
    """Yields one chunk, then fails like a pipe torn down mid-read."""

    def __init__(self, first: bytes) -> None:
        self._chunks = [first]

    async def read(self, _n: int) -> bytes:
        if self._chunks:
            return self._chunks.pop(0)
        raise ConnectionResetError("pipe closed")


class _ChunkedReader:
    """Returns the given chunks one read at a time, then EOF."""

    def __init__(self, *chunks: bytes) -> None:
        self._chunks = [chunk for chunk in chunks if chunk]

    async def read(self, _n: int) -> bytes:
        if self._chunks:
            return self._chunks.pop(0)
        return b""


def _drain_bytes(*chunks: bytes) -> DiagnosticLog:
    async def scenario():
        reader = asyncio.StreamReader()
        for chunk in chunks:
            reader.feed_data(chunk)
        reader.feed_eof()
        log = DiagnosticLog(name="ffmpeg")
        await drain(reader, log)
        return log

    return asyncio.run(scenario())


def test_drain_splits_lines_in_order():
    log = _drain_bytes(b"first\nsecond\n", b"third")
    assert log.lines == ["first", "second", "third"]
    assert not log.truncated


def test_drain_treats_carriage_returns_as_line_breaks():
    log = _drain_bytes(b"frame=1\rframe=2\r", b"\nerror: bad input\r\n")
    assert log.lines == ["frame=1", "frame=2", "error: bad input"]


def test_drain_joins_lines_split_across_chunks():
    log = _drain_bytes(b"Stream #0:0: Vid", b"eo: h264\n")
    assert log.lines == ["Stream #0:0: Video: h264"]


def test_drain_replaces_undecodable_bytes():
    log = _drain_bytes(b"bad \xff byte\n")
    assert log.lines == ["bad � byte"]


def test_drain_error_truncates_log_without_raising():
    async def scenario():
        log = DiagnosticLog(name="gifski")
        await drain(_BrokenReader(b"line one\npartial"), log)
        return log

    log = asyncio.run(scenario())
    assert log.truncated
    assert log.lines == ["line one", "partial"]
    assert log.text().endswith("[diagnostic stream truncated]")


def test_drain_keeps_blank_and_whitespace_lines_verbatim():
    log = _drain_bytes(b"a\n\nb  \n   \nc\n")
    assert log.lines == ["a", "", "b  ", "   ", "c"]
    assert log.text() == "a\n\nb  \n   \nc"


@pytest.mark.parametrize(
    "raw, expected",
    [
        (b"", []),
        (b"\n", [""]),
        (b"\n\n\r\n", ["", "", ""]),
        (b"last line without newline", ["last line without newline"]),
    ],
)
def test_drain_line_count_follows_line_breaks(raw, expected):
    assert _drain_bytes(raw).lines == expected


def test_drain_crlf_split_across_reads_is_one_break():
    async def scenario():
        log = DiagnosticLog(name="ffmpeg")
        await drain(_ChunkedReader(b"frame=1\r", b"\nframe=2\r", b"", b"\r\n"), log)
        return log

    log = asyncio.run(scenario())
    assert log.lines == ["frame=1", "frame=2", ""]
