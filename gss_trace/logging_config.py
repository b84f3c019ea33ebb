"""Process-wide logging setup for the command-line tools."""

import logging
import os
from logging.config import dictConfig
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

from .config.schema import LOG_LEVEL_ENV

DEFAULT_LEVEL = 'INFO'

_configured = False


def rich_stderr_handler(**kwargs) -> RichHandler:
    """RichHandler writing to stderr, leaving stdout to command output."""
    return RichHandler(console=Console(stderr=True), **kwargs)


def resolve_level(level: Optional[Union[str, int]] = None) -> Union[str, int]:
    """Explicit level, else $GSS_LOG_LEVEL, else INFO."""
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV) or DEFAULT_LEVEL
    if isinstance(level, str):
        level = level.strip().upper()
    return level


def configure_logging(level: Optional[Union[str, int]] = None) -> None:
    """
    Install a single Rich handler on the root logger.

    Later calls only adjust the level.
    """
    global _configured
    log_level = resolve_level(level)

    if _configured:
        logging.getLogger().setLevel(log_level)
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "plain": {
                    "format": "%(name)s: %(message)s",
                    "datefmt": "[%X]",
                }
            },
            "handlers": {
                "rich": {
                    "()": "gss_trace.logging_config.rich_stderr_handler",
                    "formatter": "plain",
                    "rich_tracebacks": True,
                    "show_path": False,
                }
            },
            "root": {"handlers": ["rich"], "level": log_level},
        }
    )

    _configured = True
