# backend/tests/conftest.py
"""
Shared fixtures.

Points the engine at a throwaway sqlite file before anything imports
vhc_engine.config, then recreates the schema around every test so ids and
slugs never leak between tests.
"""
from __future__ import annotations

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="vhc_engine_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("APP_ENV", "local")
os.environ.setdefault("AUTH_MODE", "dev")

import pytest  # noqa: E402

from vhc_engine.db import Base, engine  # noqa: E402
from vhc_engine import models  # noqa: E402,F401


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
