"""Integration test configuration.

These tests require credentials for both chat backends and are skipped by
default. Set the SOURCE_* and TARGET_* environment variables (see the README)
to enable them.
"""

import os

import pytest

from chat_reconciler.core.config import ReconcilerConfig

REQUIRED_ENV = (
    "SOURCE_ACCOUNT_SID",
    "SOURCE_AUTH_TOKEN",
    "SOURCE_SERVICE_SID",
    "TARGET_APP_ID",
    "TARGET_API_TOKEN",
)


@pytest.fixture()
def live_config():
    """Configuration built from the environment; skips when incomplete."""
    missing = [name for name in REQUIRED_ENV if not os.environ.get(name)]
    if missing:
        pytest.skip(f"Integration tests require {', '.join(missing)}")
    config = ReconcilerConfig()
    config.apply_env_overrides()
    config.validate()
    return config
