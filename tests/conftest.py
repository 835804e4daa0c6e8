import logging

import pytest
from click.testing import CliRunner

from forrest.context import Context


@pytest.fixture
def ctx():
    """A fresh Context with the lifecycle targets declared."""
    return Context()


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_forrest_logger():
    # setup_logging() replaces the handlers of the "forrest" logger
    logger = logging.getLogger("forrest")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)
