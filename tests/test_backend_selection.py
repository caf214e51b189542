from __future__ import annotations

from pathlib import Path

import pytest

from pillsight.api import create_app
from pillsight.settings import Settings, load_settings


def test_unknown_backend_rejected() -> None:
    with pytest.raises(ValueError, match="unsupported PILLSIGHT_STORE_BACKEND"):
        create_app(settings=Settings(store_backend="mongodb"))


def test_sqlite_backend_creates_database(tmp_path: Path) -> None:
    db_path = tmp_path / "data" / "pillsight.db"
    create_app(settings=Settings(store_backend="sqlite", sqlite_path=str(db_path)))
    assert db_path.exists()


def test_load_settings_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PILLSIGHT_STORE_BACKEND", "SQLite")
    monkeypatch.setenv("PILLSIGHT_SQLITE_PATH", "/tmp/meds.db")
    monkeypatch.setenv("PILLSIGHT_GOOGLE_API_KEY", "g-key")
    monkeypatch.delenv("PILLSIGHT_SPEECH_API_KEY", raising=False)
    monkeypatch.setenv("PILLSIGHT_SEARCH_LIMIT", "8")
    monkeypatch.setenv("PILLSIGHT_EXPLANATIONS_ENABLED", "off")
    monkeypatch.setenv("PILLSIGHT_EXPLANATION_TIMEOUT_SECONDS", "2.5")

    settings = load_settings()

    assert settings.store_backend == "sqlite"
    assert settings.sqlite_path == "/tmp/meds.db"
    assert settings.google_api_key == "g-key"
    assert settings.speech_api_key == "g-key"
    assert settings.search_limit == 8
    assert settings.explanations_enabled is False
    assert settings.explanation_timeout_seconds == 2.5


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "PILLSIGHT_STORE_BACKEND",
        "PILLSIGHT_GOOGLE_API_KEY",
        "PILLSIGHT_SPEECH_API_KEY",
        "PILLSIGHT_SEARCH_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.store_backend == "inmemory"
    assert settings.google_api_key is None
    assert settings.speech_api_key is None
    assert settings.search_limit == 5
