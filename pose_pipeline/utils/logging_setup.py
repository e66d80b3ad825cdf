"""
Logging setup shared by the example scripts and host applications.
"""
import logging
from typing import Optional

from ..config import LoggingConfig


def configure_logging(config: Optional[LoggingConfig] = None):
    """Configure root logging from the pipeline's logging section."""
    config = config or LoggingConfig()
    level = getattr(logging, str(config.level).upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level: {config.level}")

    logging.basicConfig(
        level=level,
        format=config.format,
        datefmt=config.datefmt,
    )
    logging.getLogger("pose_pipeline").setLevel(level)
