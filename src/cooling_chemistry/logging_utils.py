from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "COOLING_CHEMISTRY_LOG_LEVEL"
PACKAGE_LOGGER = "cooling_chemistry"


def _parse_level(value, default_level: int) -> int:
    if value is None:
        return default_level
    if isinstance(value, int):
        return int(value)
    text = str(value).strip().upper()
    if not text:
        return default_level
    if text.isdigit():
        return int(text)
    resolved = logging.getLevelName(text)
    if isinstance(resolved, int):
        return resolved
    return default_level


def get_log_level_from_env(default: str | int = "WARNING") -> int:
    """Resolve the package log level from COOLING_CHEMISTRY_LOG_LEVEL."""
    default_level = _parse_level(default, logging.WARNING)
    return _parse_level(os.environ.get(LOG_LEVEL_ENV), default_level)


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Attach a console handler to the package logger once and set its level.

    Args:
        level: explicit level; falls back to the environment, then WARNING

    Returns:
        The package logger.
    """
    resolved = (
        _parse_level(level, logging.WARNING) if level is not None else get_log_level_from_env()
    )
    logger = logging.getLogger(PACKAGE_LOGGER)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        logger.addHandler(handler)
    logger.setLevel(resolved)
    for handler in logger.handlers:
        handler.setLevel(resolved)
    return logger
