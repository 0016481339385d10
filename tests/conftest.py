"""
Pytest configuration for the toolrelay test suite.

Settings are read from ``TOOLRELAY_*`` environment variables and a ``.env``
file; both are isolated here so tests see the documented defaults.
"""

import os

import pytest


@pytest.fixture(autouse=True)
def isolated_settings_env(monkeypatch, tmp_path):
    """Strip TOOLRELAY_* variables and run from a directory without a .env file."""
    for key in list(os.environ):
        if key.startswith("TOOLRELAY_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
