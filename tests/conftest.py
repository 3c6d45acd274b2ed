import os

import pytest

from factories import FIXTURES


@pytest.fixture
def fixtures_dir():
    return FIXTURES


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep SOLGUARD_* variables from the outer environment out of tests."""
    for key in list(os.environ):
        if key.startswith("SOLGUARD_"):
            monkeypatch.delenv(key)
