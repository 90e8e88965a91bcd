from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_SOURCE_BASE_URL = "https://video.twimg.com/tweet_video"

_TRUTHY = {"1", "true", "yes", "on"}


# ================================
# ENV HELPERS
# ================================
def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _env_seconds(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    """Parse a timeout in seconds. ``0`` or a negative value means unbounded."""
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    return value if value > 0 else None


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


# ================================
# SETTINGS
# ================================
@dataclass(frozen=True)
class Settings:
    """
    Runtime configuration for the service and the conversion pipeline.

    Build it with ``Settings.from_env()``; every field has a default so a bare
    ``Settings()`` is usable in tests.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    source_base_url: str = DEFAULT_SOURCE_BASE_URL
    ffmpeg_bin: str = "ffmpeg"
    gifski_bin: str = "gifski"
    gifski_fast: bool = True

    forward_timeout: Optional[float] = 120.0
    collect_timeout: Optional[float] = None
    chunk_size: int = 64 * 1024
    terminate_grace: float = 5.0

    prefetch: bool = False
    fetch_timeout: float = 30.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env
        defaults = cls()

        port = _env_int(env, "PORT", defaults.port)
        if not 0 < port < 65536:
            logger.warning("Ignoring out-of-range PORT=%s, using %s", port, defaults.port)
            port = defaults.port

        chunk_size = _env_int(env, "FASTGIF_CHUNK_SIZE", defaults.chunk_size)
        if chunk_size <= 0:
            chunk_size = defaults.chunk_size

        return cls(
            host=env.get("HOST") or defaults.host,
            port=port,
            log_level=(env.get("LOG_LEVEL") or defaults.log_level).upper(),
            source_base_url=(env.get("FASTGIF_SOURCE_BASE_URL") or defaults.source_base_url).rstrip("/"),
            ffmpeg_bin=env.get("FFMPEG_BIN") or defaults.ffmpeg_bin,
            gifski_bin=env.get("GIFSKI_BIN") or defaults.gifski_bin,
            gifski_fast=_env_bool(env, "FASTGIF_GIFSKI_FAST", defaults.gifski_fast),
            forward_timeout=_env_seconds(env, "FASTGIF_FORWARD_TIMEOUT", defaults.forward_timeout),
            collect_timeout=_env_seconds(env, "FASTGIF_COLLECT_TIMEOUT", defaults.collect_timeout),
            chunk_size=chunk_size,
            terminate_grace=_env_seconds(env, "FASTGIF_TERMINATE_GRACE", defaults.terminate_grace)
            or defaults.terminate_grace,
            prefetch=_env_bool(env, "FASTGIF_PREFETCH", defaults.prefetch),
            fetch_timeout=_env_seconds(env, "FASTGIF_FETCH_TIMEOUT", defaults.fetch_timeout)
            or defaults.fetch_timeout,
        )
