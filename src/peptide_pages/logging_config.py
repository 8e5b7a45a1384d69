import logging
import os

from rich.logging import RichHandler


def setup_logging(verbose: bool = False) -> str:
    """Route logging through rich at LOG_LEVEL (default WARNING, DEBUG with --verbose)."""
    log_level = "DEBUG" if verbose else os.getenv("LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        level=log_level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(logging.getLogger().level, logging.WARNING))
    logging.getLogger(__name__).debug(f"Logging configured with level: {log_level}")
    return log_level
