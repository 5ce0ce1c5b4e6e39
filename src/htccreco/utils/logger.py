"""Package logger and the mapping from run diagnostics levels to log levels."""

import logging
import sys

# Configure the formatting of the logger
logging.basicConfig(format="[%(levelname)s] %(message)s", stream=sys.stdout)

# Capture warning messages and redirect them through the logger
logging.captureWarnings(True)

# Initialize logger
logger = logging.getLogger("htccreco")

_LEVELS = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}


def set_diagnostics_level(level: int) -> None:
    """Map [run].diagnostics_level (0, 1, 2) onto the package logger."""
    logger.setLevel(_LEVELS.get(level, logging.DEBUG))
