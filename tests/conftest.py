"""Test configuration for pytest."""

import logging
import os
import pytest


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    # Set environment variable to ensure minimal logging during tests
    os.environ['DUPGUARD_LOG_LEVEL'] = 'WARNING'

    # Also configure root logger to be quiet
    logging.getLogger().setLevel(logging.WARNING)

    # Fallbacks and retries log warnings on purpose in many tests
    for logger_name in ['dupguard.fingerprint.hash', 'dupguard.quota.engine', 'dupguard.service']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)
