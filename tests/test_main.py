from __future__ import annotations

import pytest

from pillsight import main


def test_run_serves_app_factory(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def _serve(app: str, **kwargs: object) -> None:
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setenv("PILLSIGHT_STORE_BACKEND", "inmemory")
    monkeypatch.setattr(main.uvicorn, "run", _serve)
    main.run(host="127.0.0.1", port=9000, log_level="warning")

    assert captured["app"] == "pillsight.api:create_app"
    assert captured["factory"] is True
    assert captured["host"] == "127.0.0.1"
    assert captured["port"] == 9000
    assert captured["log_level"] == "warning"


def test_importing_main_does_not_build_app() -> None:
    assert not hasattr(main, "app")
