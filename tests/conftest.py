"""Shared test plumbing."""

import logging

import pytest

from media_pipeline.core.logging_config import ROOT_LOGGER_NAME


@pytest.fixture(autouse=True)
def _reset_pipeline_logger_handlers():
    """Drop pipeline logger handlers so none outlive a test's captured streams."""
    yield
    logging.getLogger(ROOT_LOGGER_NAME).handlers.clear()
