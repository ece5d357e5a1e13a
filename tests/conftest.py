import os

import pytest


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("HOURBOOK_"):
            monkeypatch.delenv(name)
