"""Pytest configuration and Hypothesis profiles."""

import logging

import pytest
from hypothesis import settings

from stockrelay.core.logging import set_log_level

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=20)

# Load dev profile by default, CI can override via --hypothesis-profile=ci
settings.load_profile("dev")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio as the async backend for pytest-asyncio."""
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_log_level():
    """Undo any set_log_level() a test (or the demo app) made."""
    yield
    set_log_level(logging.INFO)
