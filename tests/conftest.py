"""Pytest configuration for test isolation.

The engine in ``db.client`` is a process-wide singleton bound to one URL, and
engine settings are read from ``BANK_MATCHING_*`` environment variables. To
keep tests hermetic, each test gets a fresh engine, a clean environment, and
its own SQLite file. Handlers attached to the ``bank_matching`` logger by
``configure_logging`` are removed after each test.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest
from db.client import dispose_engine

from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_engine_and_env(monkeypatch: pytest.MonkeyPatch):
    for key in list(os.environ):
        if key.startswith("BANK_MATCHING_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    dispose_engine()
    yield
    dispose_engine()


@pytest.fixture(autouse=True)
def _reset_package_logging():
    yield
    logger = logging.getLogger("bank_matching")
    for h in list(logger.handlers):
        if not isinstance(h, logging.NullHandler):
            logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "bank-matching.db")
