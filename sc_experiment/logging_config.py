from __future__ import annotations

import logging
import os
from typing import IO, Optional, Union

from pythonjsonlogger import jsonlogger

LOG_FORMAT_ENV = "SC_EXPERIMENT_LOG_FORMAT"
LOG_LEVEL_ENV = "SC_EXPERIMENT_LOG_LEVEL"

FORMAT_MODES = ("json", "plain")

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _resolve_format(force_format: Optional[str]) -> str:
    mode = force_format if force_format is not None else os.getenv(LOG_FORMAT_ENV, "json")
    mode = mode.strip().lower()
    if mode not in FORMAT_MODES:
        raise ValueError(f"Unknown log format '{mode}'. Expected one of {FORMAT_MODES}")
    return mode


def _build_formatter(mode: str) -> logging.Formatter:
    if mode == "plain":
        return logging.Formatter(_FORMAT)
    # extra={...} fields of each record become keys of the JSON object
    return jsonlogger.JsonFormatter(_FORMAT)


def configure_logging(
        level: Union[int, str, None] = None,
        force_format: Optional[str] = None,
        stream: Optional[IO[str]] = None,
        logger_name: Optional[str] = None,
) -> logging.Logger:
    """
    Attach one stream handler to a logger and return that logger.

    Modes:
    - JSON (default): one object per record, with the `extra=` fields the
      experiment, loader and analysis modules attach (shapes, assay names...)
    - plain text, for notebooks and interactive sessions

    Format selection order:
        1) force_format argument ("json" or "plain") if provided
        2) env var SC_EXPERIMENT_LOG_FORMAT
        3) default = "json"
    An unknown mode raises ValueError rather than falling back silently.

    :param level: level number or name; defaults to SC_EXPERIMENT_LOG_LEVEL,
                  then INFO
    :param stream: where records go (default: sys.stderr)
    :param logger_name: configure only this logger, e.g. "sc_experiment",
                        instead of the root logger
    """
    mode = _resolve_format(force_format)
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO")
    if isinstance(level, str):
        level = level.strip().upper()

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(_build_formatter(mode))

    # Replace any existing handlers to avoid duplicate logs
    logger.handlers.clear()
    logger.addHandler(handler)
    return logger
