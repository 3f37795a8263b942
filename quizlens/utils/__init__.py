"""Utility functions and helpers for the QuizLens application"""
from .path_config import (
    get_app_root,
    get_config_dir,
    get_logs_dir,
    get_config_file
)
from .log_config import get_component_logger, set_log_level
from .config_loader import config, ConfigManager, get_api_key, DEFAULT_CONFIG

__all__ = [
    'get_app_root',
    'get_config_dir',
    'get_logs_dir',
    'get_config_file',
    'get_component_logger',
    'set_log_level',
    'config',
    'ConfigManager',
    'get_api_key',
    'DEFAULT_CONFIG'
]
