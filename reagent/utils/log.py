"""Package-wide logger and shorthand helpers.

Usage::

    from reagent.utils.log import log_debug, log_warning

    log_debug("Guardrail 'pii' passed")
"""

import logging
import os
from typing import Any, Optional, Union

LOGGER_NAME = "reagent"

logger = logging.getLogger(LOGGER_NAME)


def _level_from_env() -> int:
  if os.getenv("REAGENT_DEBUG", "").lower() in ("1", "true", "yes"):
    return logging.DEBUG
  name = os.getenv("REAGENT_LOG_LEVEL")
  if name:
    level = logging.getLevelName(name.upper())
    if isinstance(level, int):
      return level
  return logging.WARNING


def _configure() -> None:
  if logger.handlers:
    return
  handler = logging.StreamHandler()
  handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s | %(message)s"))
  logger.addHandler(handler)
  logger.setLevel(_level_from_env())
  logger.propagate = False


_configure()


def set_log_level(level: Union[int, str]) -> None:
  """Set the level of the package logger (accepts ``"DEBUG"`` or ``logging.DEBUG``)."""
  if isinstance(level, str):
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
      raise ValueError(f"Unknown log level: {level}")
    level = resolved
  logger.setLevel(level)


def use_debug_logger(enabled: bool = True) -> None:
  """Toggle debug output for the whole package."""
  logger.setLevel(logging.DEBUG if enabled else _level_from_env())


def log_debug(msg: str, *args: Any, exc_info: Optional[bool] = None) -> None:
  logger.debug(msg, *args, exc_info=exc_info)


def log_info(msg: str, *args: Any) -> None:
  logger.info(msg, *args)


def log_warning(msg: str, *args: Any, exc_info: Optional[bool] = None) -> None:
  logger.warning(msg, *args, exc_info=exc_info)


def log_error(msg: str, *args: Any, exc_info: Optional[bool] = None) -> None:
  logger.error(msg, *args, exc_info=exc_info)
