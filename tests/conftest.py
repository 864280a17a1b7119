"""
Shared fixtures for flaky-repeat tests.
"""
import pytest

pytest_plugins = ["pytester"]


@pytest.fixture(autouse=True)
def clean_verbose_env(monkeypatch):
    """Keep a developer's FLAKY_REPEAT_VERBOSE from leaking into tests."""
    monkeypatch.delenv("FLAKY_REPEAT_VERBOSE", raising=False)
