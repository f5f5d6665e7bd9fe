"""
Logging configuration for the activity stream client

Provides a consistent logging setup for library users and the CLI, with
noise suppression for the transport libraries.
"""

import logging
import os
from typing import Optional, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

NOISY_LOGGERS = [
    "websockets",
    "websockets.client",
    "httpx",
    "httpcore",
]

SENSITIVE_MARKERS = ("KEY", "SECRET", "TOKEN", "PASSWORD")


def configure_logging(
    level: Union[str, int] = "INFO",
    format_string: Optional[str] = None,
    suppress_transport: bool = True,
    verbose: bool = False
) -> None:
    """
    Configure logging for the activity stream client

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_string: Custom format string, uses default if None
        suppress_transport: Whether to quiet websockets/httpx logging
        verbose: If True, include file names and line numbers
    """
    if isinstance(level, str):
        log_level = getattr(logging, level.upper(), logging.INFO)
    else:
        log_level = level

    if format_string is None:
        if verbose:
            format_string = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
        else:
            format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=format_string,
        force=True  # Override any existing configuration
    )

    if suppress_transport:
        suppress_transport_logging()


def suppress_transport_logging() -> None:
    """Quiet the per-frame chatter of the transport libraries"""
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def configure_cli_logging(verbose: bool = False, level: str = "WARNING") -> None:
    """
    Configure logging for the CLI

    Args:
        verbose: If True, show DEBUG with file/line detail
        level: Level used when not verbose
    """
    if verbose:
        configure_logging(level="DEBUG", verbose=True, suppress_transport=True)
    else:
        configure_logging(
            level=level,
            format_string="%(asctime)s - %(levelname)s - %(message)s",
            suppress_transport=True
        )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with consistent naming"""
    return logging.getLogger(name)


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Mask all but the last few characters of a secret"""
    if not value:
        return "<none>"
    if len(value) <= visible:
        return "***"
    return "***" + value[-visible:]


def mask_url_credential(url: str, param: str) -> str:
    """Return url with the value of query parameter ``param`` masked"""
    parts = urlsplit(url)
    query = [
        (key, mask_secret(value) if key == param else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))


def log_environment_info(logger: logging.Logger, prefix: str = "WEBHOOK_ACTIVITY_") -> None:
    """
    Log environment configuration for debugging, masking sensitive values

    Args:
        logger: Logger instance to use
        prefix: Only variables starting with this prefix are shown
    """
    logger.info("=== Environment Configuration ===")

    names = sorted(name for name in os.environ if name.startswith(prefix))
    for name in names:
        if any(marker in name for marker in SENSITIVE_MARKERS):
            logger.info("  %s: ***MASKED***", name)
        else:
            logger.info("  %s: %s", name, os.environ[name])
    if not names:
        logger.debug("  no %s* variables set", prefix)

    logger.info("  Current working directory: %s", os.getcwd())
    logger.info("=== End Environment Configuration ===")
