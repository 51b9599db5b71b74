from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from biblecloud.catalog import Chapter
from biblecloud.models import AuthUser
from biblecloud.stores.sqlite_store import SQLiteDocumentStore
from biblecloud.utils import get_user_settings_dir, utc_now_iso

_ENV_VARS = (
    "BIBLECLOUD_BACKEND",
    "BIBLECLOUD_FIREBASE_API_KEY",
    "BIBLECLOUD_FIREBASE_PROJECT_ID",
    "BIBLECLOUD_CATALOG",
    "BIBLECLOUD_DATABASE",
    "BIBLECLOUD_HTTP_TIMEOUT",
    "BIBLECLOUD_SECRET_KEY",
)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    settings_dir = tmp_path / "settings"
    monkeypatch.setenv("BIBLECLOUD_SETTINGS_DIR", str(settings_dir))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_user_settings_dir.cache_clear()
    yield settings_dir
    get_user_settings_dir.cache_clear()


@pytest.fixture
def store(tmp_path):
    return SQLiteDocumentStore(tmp_path / "documents.db")


@pytest.fixture
def user():
    return AuthUser(uid="user-1", email="lector@example.com")


@pytest.fixture
def clock():
    start = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    ticks = itertools.count()
    return lambda: utc_now_iso(start + timedelta(minutes=next(ticks)))


@pytest.fixture
def chapters():
    return [
        Chapter(id="genesis-1", section="Génesis", chapter="1"),
        Chapter(id="genesis-2", section="Génesis", chapter="2"),
        Chapter(id="exodo-1", section="Éxodo", chapter="1"),
        Chapter(id="juan-3", section="Juan", chapter="3"),
    ]
