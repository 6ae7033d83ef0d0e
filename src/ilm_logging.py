"""
Logging setup for the immersed-layer modules.

Every module logs through ``logging.getLogger(__name__)``. Since the modules
are flat (no common package), ``setup_logging`` attaches the handlers to each
of the module loggers listed in ``ILM_LOGGER_NAMES``.
"""

import logging
import sys
from typing import Optional, Sequence

ILM_LOGGER_NAMES = (
    "ilmgrid",
    "ilmbase",
    "ilmsurface",
    "ilmmatrix",
    "ilmforcing",
    "ilmsystem",
    "ilm_problems",
)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    names: Sequence[str] = ILM_LOGGER_NAMES,
) -> None:
    """
    Configures the module loggers with a console handler and, optionally, a
    file handler.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
        names: Logger names to configure. Defaults to all ILM modules.
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    file_handler = None
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)

    for name in names:
        logger = logging.getLogger(name)
        logger.setLevel(level)

        # Avoid duplicate lines when called twice (e.g. in a notebook).
        if logger.hasHandlers():
            logger.handlers.clear()

        logger.addHandler(console_handler)
        if file_handler is not None:
            logger.addHandler(file_handler)
        logger.propagate = False

    logging.getLogger(names[0]).info("Logging initialized.")
