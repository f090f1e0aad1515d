"""Shared test fixtures for the document-service test suite."""

from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's DOC_* / database settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("DOC_") or name in ("DATABASE_URL", "SEARCH_DATABASE_URL", "K_SERVICE", "LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)
