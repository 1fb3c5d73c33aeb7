from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for key in list(os.environ):
        if key.startswith("GEPPETTO_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
