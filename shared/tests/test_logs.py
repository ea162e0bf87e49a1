"""Tests for the shared logging setup."""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from kidtime_shared.logs import setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    google_level = logging.getLogger("google").level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("google").setLevel(google_level)


def test_writes_to_log_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "agent.log"

    setup_logging(verbose=True, log_file=log_file)
    logging.getLogger("kidtime_client.loop").debug("Refreshed inputs")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = log_file.read_text()
    assert "[DEBUG] kidtime_client.loop: Refreshed inputs" in text


def test_default_level_is_info() -> None:
    setup_logging()

    assert logging.getLogger().level == logging.INFO


def test_client_libraries_stay_quiet() -> None:
    setup_logging(verbose=True)

    assert logging.getLogger("google").level == logging.WARNING
