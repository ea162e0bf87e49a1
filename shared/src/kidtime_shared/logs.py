"""Logging setup shared by the KidTime command line tools."""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Firestore client stack, chatty at DEBUG
NOISY_LOGGERS = ("google", "grpc", "urllib3")


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Log to stderr, and also to ``log_file`` when given.

    ``verbose`` turns on DEBUG for KidTime's own loggers. The Firestore client
    libraries stay at WARNING either way.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
