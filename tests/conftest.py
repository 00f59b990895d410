"""Shared fixtures: every test runs with a clean configuration environment."""

from __future__ import annotations

import os

import pytest

from voxnote import config


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("VOXNOTE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    config.reset_settings()
    yield
    config.reset_settings()
