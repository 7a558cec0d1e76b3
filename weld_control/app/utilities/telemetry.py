"""
Telemetry and logging utilities for the weld control service.

This module provides the main logging interface used throughout the application.
``logger`` is the package root logger; reconfiguring through
``initialize_logging`` swaps its handlers in place, so modules that imported
it keep logging through the new configuration.
"""

from weld_control.app.utilities.logging_config import (
    LoggingConfig,
    LogLevel,
    LogFormat,
    LogDestination,
    configure_logging,
    get_logger as _get_logger,
    set_log_level,
    logging_manager
)


def get_logger(name=None):
    """Get a logger instance - wrapper around the logging manager"""
    return _get_logger(name)


def initialize_logging(config=None, settings=None):
    """
    Initialize the logging system.

    Either pass a ready ``LoggingConfig`` or application ``settings`` to build
    one from; with neither, a JSON console configuration is used.
    """
    if config is None and settings is not None:
        config = LoggingConfig(
            level=settings.log_level,
            format_type=settings.log_format,
            enable_console=settings.log_console,
            log_file_path=settings.log_file,
        )
    elif config is None:
        config = LoggingConfig(
            level=LogLevel.INFO,
            format_type=LogFormat.JSON_COMPACT,
            enable_console=True,
            console_destination=LogDestination.STDOUT,
            capture_warnings=True
        )

    configure_logging(config)
    return get_logger()


if not logging_manager.is_configured:
    initialize_logging()

logger = get_logger()

__all__ = [
    'logger',
    'get_logger',
    'initialize_logging',
    'LoggingConfig',
    'LogLevel',
    'LogFormat',
    'LogDestination',
    'configure_logging',
    'set_log_level',
    'logging_manager'
]
