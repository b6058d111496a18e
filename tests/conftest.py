"""Pytest configuration for all tests."""

import os

import pytest


@pytest.fixture(autouse=True)
def clean_smarty_env(monkeypatch):
    """Keep SMARTY_* variables from the outer environment out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("SMARTY_"):
            monkeypatch.delenv(key, raising=False)
