"""Package logging for linkgraph.

Modules log through ``logging.getLogger(__name__)``; the CLI entry point calls
``configure_logging`` once to attach a stderr handler to the package logger.

The threshold comes from LINKGRAPH_LOG_LEVEL (DEBUG shows per-node analyzer
and rule detail, WARNING keeps only rule faults and malformed boards). It is
INFO when the variable is unset or names an unknown level. Quiet mode lifts the
threshold to at least ERROR; leaving quiet mode returns to the environment level.
"""

import logging
import os
import sys

LOGGER_NAME = "linkgraph"
LEVEL_ENV_VAR = "LINKGRAPH_LOG_LEVEL"
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

_quiet = False


def _env_level() -> int:
    name = os.environ.get(LEVEL_ENV_VAR, "").strip().upper()
    if not name:
        return logging.INFO
    level = logging.getLevelName(name)
    # getLevelName returns a "Level X" string for unknown names
    return level if isinstance(level, int) else logging.INFO


def effective_level() -> int:
    """Level the package logger runs at, from the environment and quiet mode."""
    level = _env_level()
    return max(level, logging.ERROR) if _quiet else level


def _apply_level(logger: logging.Logger) -> None:
    level = effective_level()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


def configure_logging() -> None:
    """Attach the stderr handler (first call only) and apply the current level."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        # Records stop here instead of repeating through the root logger
        logger.propagate = False
    _apply_level(logger)


def set_quiet_mode(quiet: bool) -> None:
    """Hide everything below ERROR, or restore the level LINKGRAPH_LOG_LEVEL asks for."""
    global _quiet
    _quiet = quiet
    _apply_level(logging.getLogger(LOGGER_NAME))
