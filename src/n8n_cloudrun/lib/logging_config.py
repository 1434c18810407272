"""Logging setup shared by the CLI and the deployment engine."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Client libraries that are chatty at DEBUG level
NOISY_LOGGERS = (
    "docker",
    "urllib3",
    "google.auth",
    "google.api_core",
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
)


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logging for CLI commands.

    Args:
        verbose: Enable DEBUG level output
        quiet: Only emit errors
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)
