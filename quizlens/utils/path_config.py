"""Path configuration utilities for the QuizLens application.

This module provides centralized path management for all application directories.
Directories are created on first access.

Setting QUIZLENS_HOME moves every directory under that location, which is what an
installed (read-only) package should use.
"""
import os
from pathlib import Path


def get_app_root():
    """Get the root directory of the application."""
    home = os.getenv("QUIZLENS_HOME")
    if home:
        return str(Path(home).expanduser().absolute())
    return str(Path(__file__).parent.parent.absolute())


def get_config_dir():
    """Get the configuration directory path."""
    config_dir = os.path.join(get_app_root(), "config")
    os.makedirs(config_dir, exist_ok=True)
    return config_dir


def get_logs_dir():
    """Get the logs directory path."""
    logs_dir = os.path.join(get_app_root(), "logs")
    os.makedirs(logs_dir, exist_ok=True)
    return logs_dir


def get_config_file():
    """Get the application configuration file path."""
    return os.path.join(get_config_dir(), "quizlens_config.json")
