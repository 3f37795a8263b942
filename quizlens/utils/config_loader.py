"""Configuration loader for the QuizLens application.

Loads default settings, merges the optional JSON file from the config directory on
top of them and validates the result. Secrets never live in the JSON file: the
LLM credential is read from the environment (a local .env file is honoured).

The pipeline thresholds (question length, similarity, cache size, timings) are
constants in quizlens.core.constants and are deliberately not configurable here.
"""
import os
import json
import logging
import copy
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .path_config import get_config_file

load_dotenv()

API_KEY_ENV = "GROQ_API_KEY"

DEFAULT_CONFIG: Dict[str, Any] = {
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    },
    "llm": {
        "base_url": "https://api.groq.com/openai/v1",
        "model": "llama-3.3-70b-versatile",
        "temperature": 0.0,
        "max_tokens": 30,
        "connect_timeout": 1.0,
        "read_timeout": 8.0,
        "streaming": True
    },
    "capture": {
        "grab_interval": 0.5,
        "max_images": 2
    },
    "server": {
        "host": "0.0.0.0",
        "port": 5348,
        "room": "quizlens_room"
    }
}


def get_api_key() -> str:
    """Return the LLM API key from the environment, or an empty string."""
    return os.getenv(API_KEY_ENV, "").strip()


class ConfigManager:
    def __init__(self, config_file: Optional[str] = None):
        """Initialize the configuration manager."""
        self._config_file = config_file
        self._config: Dict[str, Any] = {}
        self._load_defaults()
        self._load_config_file()

    def _load_defaults(self) -> None:
        """Load default configuration values."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)

    def _load_config_file(self) -> None:
        """Merge the JSON configuration file, if present, over the defaults."""
        filepath = self._config_file or get_config_file()
        if not os.path.exists(filepath):
            return
        try:
            with open(filepath, 'r') as f:
                file_config = json.load(f)
            self._validate_config(file_config)
            self._merge_config(self._config, file_config)
        except (OSError, ValueError, TypeError) as e:
            logging.error(f"Error loading config file {filepath}: {e}")

    def _merge_config(self, base: Dict, update: Dict) -> None:
        """
        Recursively merge two configuration dictionaries.
        Args:
            base: Base configuration dictionary
            update: Dictionary with updates to merge
        """
        for key, value in update.items():
            if (
                key in base and
                isinstance(base[key], dict) and
                isinstance(value, dict)
            ):
                self._merge_config(base[key], value)
            else:
                base[key] = value

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate the sections present in a loaded configuration."""
        if not isinstance(config, dict):
            raise ValueError("Configuration root must be a JSON object")
        if "llm" in config:
            self._validate_llm_config(config["llm"])
        if "capture" in config:
            self._validate_capture_config(config["capture"])
        if "server" in config:
            self._validate_server_config(config["server"])

    def _validate_llm_config(self, config: Dict[str, Any]) -> None:
        """Validate LLM backend configuration"""
        for key in ("connect_timeout", "read_timeout"):
            if key in config and not (0 < float(config[key]) <= 120):
                raise ValueError(f"llm.{key} must be between 0 and 120 seconds")
        if "max_tokens" in config and int(config["max_tokens"]) <= 0:
            raise ValueError("llm.max_tokens must be positive")

    def _validate_capture_config(self, config: Dict[str, Any]) -> None:
        """Validate screen capture configuration"""
        if "grab_interval" in config and not (0.05 <= float(config["grab_interval"]) <= 60.0):
            raise ValueError("Capture interval must be between 0.05 and 60 seconds")
        if "max_images" in config and int(config["max_images"]) < 1:
            raise ValueError("capture.max_images must be at least 1")

    def _validate_server_config(self, config: Dict[str, Any]) -> None:
        """Validate overlay server configuration"""
        if "port" in config and not isinstance(config["port"], int):
            raise ValueError("Server port must be an integer")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Args:
            section: Configuration section
            key: Configuration key
            default: Default value if not found
        Returns:
            Configuration value or default
        """
        try:
            return self._config[section][key]
        except KeyError:
            return default

    def set(self, section: str, key: str, value: Any) -> None:
        """Set a configuration value."""
        if section not in self._config:
            self._config[section] = {}
        self._config[section][key] = value

    def save(self, filepath: Optional[str] = None) -> bool:
        """
        Save current configuration to a file.
        Returns:
            bool: True if save was successful, False otherwise
        """
        filepath = filepath or self._config_file or get_config_file()
        try:
            os.makedirs(os.path.dirname(filepath), exist_ok=True)
            with open(filepath, 'w') as f:
                json.dump(self._config, f, indent=2)
            return True
        except OSError as e:
            logging.error(f"Error saving config to {filepath}: {e}")
            return False

    @property
    def config(self) -> Dict[str, Any]:
        """Get a copy of the complete configuration dictionary."""
        return copy.deepcopy(self._config)


# Create a global configuration instance
config = ConfigManager()
