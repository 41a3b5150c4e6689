"""Console logging for pipeline runs."""

import logging
from typing import Optional

from rich.logging import RichHandler

from .config import settings
from .errors import ConfigurationError

# HTTP and SDK clients log every request at INFO/DEBUG
CLIENT_LOGGERS = ("httpx", "httpcore", "hpack", "openai")


def resolve_level(level: Optional[str] = None) -> int:
    """Numeric logging level for a name such as "debug", defaulting to settings."""
    name = (level or settings.log_level).upper()
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ConfigurationError(f"Unknown log level: {name}")
    return value


def setup_logging(level: Optional[str] = None) -> int:
    """
    Route all records through a rich console handler.

    Calling it again replaces the handler, so the CLI can re-run it with a
    different level in the same process.

    Args:
        level: Level name; `settings.log_level` when omitted

    Returns:
        The numeric level applied to the root logger
    """
    root_level = resolve_level(level)

    # Markup stays off: record tags like [SKIP-ADDR] are plain text
    logging.basicConfig(
        level=root_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False, markup=False, rich_tracebacks=True)],
        force=True,
    )

    client_level = max(root_level, logging.WARNING)
    for logger_name in CLIENT_LOGGERS:
        logging.getLogger(logger_name).setLevel(client_level)

    return root_level


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)
