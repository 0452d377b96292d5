"""Fixtures for CLI tests."""

import logging

import pytest
from click.testing import CliRunner

from porch.cli.logging_setup import LOGGER_NAME


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging():  # noqa: ANN202
    """Drop handlers bound to a CliRunner's streams once the test is over."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
