"""
Source acquisition.

Builds the locator ffmpeg reads from, and optionally stages the remote
resource into a temporary file first (FASTGIF_PREFETCH=1) so a slow origin
shows up as a fetch error instead of a stalled pipeline.
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Iterator

import requests

from fastgif.config import Settings
from fastgif.pipeline.errors import SourceFetchError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 256 * 1024


class InvalidResourcePath(ValueError):
    """The path segment cannot be turned into a source locator."""


def build_source_url(path: str, settings: Settings) -> str:
    """
    Join the resource path onto the configured base URL.

    Only a single, non-empty path segment is accepted.
    """
    segment = path.strip()
    if not segment:
        raise InvalidResourcePath("Resource path is empty")
    if "/" in segment or "\\" in segment or ".." in segment:
        raise InvalidResourcePath(f"Invalid resource path: {path!r}")
    return f"{settings.source_base_url}/{segment}"


def download_to_file(url: str, destination: str, timeout: float) -> int:
    """Stream ``url`` into ``destination``. Returns the number of bytes written."""
    written = 0
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(destination, "wb") as fh:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
                        written += len(chunk)
    except requests.RequestException as exc:
        raise SourceFetchError(f"Failed to download {url}: {exc}") from exc
    except OSError as exc:
        raise SourceFetchError(f"Failed to stage {url} on disk: {exc}") from exc

    logger.info("Staged %s bytes from %s", written, url)
    return written


@contextmanager
def staged_source(url: str, settings: Settings) -> Iterator[str]:
    """
    Yield a local path holding the downloaded resource.

    The temporary file is removed when the block exits, whatever happened.
    """
    fd, path = tempfile.mkstemp(prefix="fastgif-", suffix=os.path.splitext(url)[1] or ".bin")
    os.close(fd)
    try:
        download_to_file(url, path, settings.fetch_timeout)
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
