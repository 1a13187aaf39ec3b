"""loguru setup for the market agent.

Every record goes to stderr. Stdout carries command output only, so
``market-agent predict --json`` can be piped straight into a JSON parser.
"""

import sys
from typing import Optional, TextIO

from loguru import logger

from market_agent.config.settings import Settings, settings

DEFAULT_COMPONENT = "market_agent"

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[component]}</cyan> | <level>{message}</level>"
)


def _wants_console(config: Settings, sink: TextIO) -> bool:
    if config.log_format.lower() != "console":
        return False
    isatty = getattr(sink, "isatty", None)
    return bool(isatty and isatty())


def configure_logging(config: Optional[Settings] = None, sink: Optional[TextIO] = None) -> int:
    """
    Replace every loguru handler with a single handler on ``sink``.

    Colorized lines are written only when ``log_format`` is ``console``
    and the sink is a terminal. Anything else gets one serialized JSON
    record per line.

    Args:
        config: Settings providing ``log_level`` and ``log_format``
        sink: Target stream, ``sys.stderr`` when omitted

    Returns:
        The loguru handler id

    Raises:
        ValueError: If ``log_level`` is not a loguru level name
    """
    config = config or settings
    sink = sink or sys.stderr
    level = config.log_level.upper()

    logger.remove()
    logger.configure(extra={"component": DEFAULT_COMPONENT})

    if _wants_console(config, sink):
        return logger.add(sink, format=CONSOLE_FORMAT, level=level, colorize=True)

    return logger.add(sink, format="{message}", level=level, serialize=True, diagnose=False)


def get_logger(component: str):
    """Return the process logger bound to ``component``."""
    return logger.bind(component=component)


configure_logging()

__all__ = ["logger", "get_logger", "configure_logging"]
