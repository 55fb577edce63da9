"""Configuration management for recurrence_lite."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# RECURRENCE_* variable -> config key, for positive integer limits
_INT_SETTINGS = {
    "RECURRENCE_MAX_INSTANCES": "max_instances",
    "RECURRENCE_MAX_ITERATIONS": "max_iterations",
    "RECURRENCE_MAX_EMPTY_PERIODS": "max_empty_periods",
}


class ConfigManager:
    """Manages expansion configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []

        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                str(self.env_file_path),
                exc_info=True,
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()

            if not line or line.startswith("#") or "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            if key.startswith("export "):
                key = key[len("export "):].strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - RECURRENCE_MAX_INSTANCES -> 'max_instances' (positive int)
        - RECURRENCE_MAX_ITERATIONS -> 'max_iterations' (positive int)
        - RECURRENCE_MAX_EMPTY_PERIODS -> 'max_empty_periods' (positive int)
        - RECURRENCE_DEFAULT_TIMEZONE -> 'default_timezone'
        - RECURRENCE_LOG_LEVEL -> 'log_level' (uppercased)

        Invalid values are logged and left out.

        Returns:
            Configuration dictionary accepted by RRuleExpanderConfig.from_env
        """
        cfg: dict[str, Any] = {}

        for env_key, cfg_key in _INT_SETTINGS.items():
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                value = int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)
                continue
            if value < 1:
                logger.warning("Invalid %s=%r (must be positive); ignoring", env_key, raw)
                continue
            cfg[cfg_key] = value

        default_tz = os.environ.get("RECURRENCE_DEFAULT_TIMEZONE")
        if default_tz:
            cfg["default_timezone"] = default_tz

        log_level = os.environ.get("RECURRENCE_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level.strip().upper()

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()
