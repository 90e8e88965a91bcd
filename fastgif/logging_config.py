import logging

LOG_FORMAT = "%(asctime)s %(levelname)s:%(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging once for the whole process.

    Unknown level names fall back to INFO.
    """
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger().setLevel(resolved)
