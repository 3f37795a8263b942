"""Component logger setup for QuizLens.

Every component logs to its own file under the logs directory, using the same
format. Handlers are attached once per logger so repeated construction of a
component does not duplicate output.
"""
import os
import sys
import logging

from .path_config import get_logs_dir

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOGGER_PREFIX = 'quizlens'

_level = logging.INFO


def set_log_level(level):
    """Set the level used for component loggers created from now on.

    Accepts a logging constant or a level name such as "DEBUG".
    """
    global _level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    _level = level
    for name in list(logging.root.manager.loggerDict):
        if name.startswith(f"{LOGGER_PREFIX}-"):
            logging.getLogger(name).setLevel(_level)


def get_component_logger(component: str) -> logging.Logger:
    """Return the logger for a component, e.g. 'FrameBuffer' -> 'quizlens-FrameBuffer'."""
    logger = logging.getLogger(f"{LOGGER_PREFIX}-{component}")
    logger.setLevel(_level)

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)
        try:
            log_file = os.path.join(get_logs_dir(), f"{component.lower()}.log")
            handler = logging.FileHandler(log_file)
        except OSError:
            # Read-only install location; stderr keeps messages identifiable.
            handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
