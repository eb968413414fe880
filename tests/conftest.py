from __future__ import annotations

import pytest

from motofinder.config.settings import get_settings
from motofinder.storage.database import Database


@pytest.fixture
def memory_db() -> Database:
    db = Database.from_url("sqlite://")
    db.create_all()
    return db


@pytest.fixture
def fresh_settings():
    # Settings are lru_cached; clear around tests that change env vars.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
