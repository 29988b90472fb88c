from __future__ import annotations

import logging
import logging.config
from typing import Optional

from coursecraft.models.configs import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Apply the logging configuration and return the package logger."""

    config = config or LoggingConfig()
    if config.file_path is not None:
        config.file_path.parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(config.get_logging_config())
    return logging.getLogger("coursecraft")


__all__ = ["configure_logging"]
