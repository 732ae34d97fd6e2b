"""Package logger setup and structured log helper."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

LOGGER_NAME = "earstaff"
LOG_PRECISION = 3

logger = logging.getLogger(LOGGER_NAME)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


def get_logger(name: str) -> logging.Logger:
    """Return a child of the package logger for module ``name``."""
    if name == LOGGER_NAME or name.startswith(LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logger.getChild(name)


def set_verbose(verbose: bool) -> None:
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _round_floats(value: Any, precision: int) -> Any:
    if isinstance(value, float):
        return round(value, precision)
    if isinstance(value, dict):
        return {k: _round_floats(v, precision) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_round_floats(v, precision) for v in value]
    return value


def log_structured(
    log: logging.Logger,
    label: str,
    data: Any,
    precision: int = LOG_PRECISION,
) -> None:
    """Emit ``label: <json>`` at DEBUG with floats rounded to ``precision`` places."""
    if not log.isEnabledFor(logging.DEBUG):
        return
    try:
        payload = json.dumps(_round_floats(data, precision), default=str, sort_keys=True)
    except (TypeError, ValueError):
        payload = repr(data)
    log.debug("%s: %s", label, payload)
