"""
Central logging configuration for recurrence_lite.

Keeps the package's own loggers at INFO (or DEBUG when requested) while holding
chatty third-party loggers at WARNING.
"""

import logging
import os
from typing import Optional

# Third-party loggers that stay quiet unless explicitly reset
SUPPRESSED_LOGGERS: dict[str, int] = {
    "asyncio": logging.WARNING,
    "pydantic": logging.WARNING,
    "dateutil": logging.WARNING,
}

LITE_MODULES = [
    "recurrence_lite",
    "recurrence_lite.lite_rrule_parser",
    "recurrence_lite.lite_rrule_expander",
    "recurrence_lite.timezone_utils",
    "recurrence_lite.config_manager",
]

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_lite_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure logging levels for recurrence_lite.

    Args:
        debug_mode: Whether to enable debug logging for recurrence_lite modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Root log level; takes precedence over RECURRENCE_LOG_LEVEL

    Environment Variables:
        RECURRENCE_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        RECURRENCE_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("RECURRENCE_DEBUG", "").lower() in ("1", "true", "yes")
    requested_level = (log_level or os.getenv("RECURRENCE_LOG_LEVEL", "")).strip().upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if requested_level in _VALID_LEVELS:
        root_level = getattr(logging, requested_level)

    # Keep any handler installed by recurrence_lite._init_logging
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    logger_config = dict(SUPPRESSED_LOGGERS)
    lite_level = logging.DEBUG if final_debug else logging.INFO
    for module in LITE_MODULES:
        logger_config[module] = lite_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.debug("Debug logging enabled for recurrence_lite modules")
    else:
        root_logger.debug("Production logging configuration applied")


def reset_logging_to_debug() -> None:
    """Reset all known loggers to DEBUG level for troubleshooting."""
    logging.getLogger().setLevel(logging.DEBUG)

    for logger_name in [*SUPPRESSED_LOGGERS, *LITE_MODULES]:
        logging.getLogger(logger_name).setLevel(logging.DEBUG)

    logging.getLogger().info("All loggers reset to DEBUG level for troubleshooting")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}

    for logger_name in ["recurrence_lite", *SUPPRESSED_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)

    return status
