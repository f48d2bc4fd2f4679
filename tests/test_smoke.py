"""Smoke tests for the health endpoint."""

from contextlib import contextmanager
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover - import-time guard
    sys.path.insert(0, str(ROOT))

import app as app_module  # noqa: E402  (import after path adjustment)
from slack_build_trigger import config  # noqa: E402
from slack_build_trigger.db import get_engine, get_session_factory  # noqa: E402


def _seed_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("ROOT_URL", "https://ci.example.com/")
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "test-secret")
    monkeypatch.setenv("SLACK_TRIGGER_CONFIG", str(tmp_path / "slack-trigger.json"))
    monkeypatch.delenv("SLACK_CLIENT_ID", raising=False)
    monkeypatch.delenv("SLACK_CLIENT_SECRET", raising=False)
    config.get_settings.cache_clear()
    get_engine.cache_clear()
    get_session_factory.cache_clear()


def test_health_endpoint_returns_ok(monkeypatch, tmp_path):
    _seed_env(monkeypatch, tmp_path)

    flask_app = app_module.create_app()

    with flask_app.test_client() as client:
        response = client.get("/healthz")
        assert response.status_code == 200
        data = response.get_json()
        assert data["ok"] is True
        assert data["config"] == "valid"
        assert data["db"] == "up"
        assert data["signing_secret"] == "set"
        assert data["oauth"] == "missing"
        assert "version" in data


def test_health_endpoint_reports_db_down(monkeypatch, tmp_path):
    _seed_env(monkeypatch, tmp_path)

    flask_app = app_module.create_app()

    @contextmanager
    def failing_session_scope():
        raise RuntimeError("db down")
        yield

    monkeypatch.setattr(app_module, "session_scope", failing_session_scope)

    with flask_app.test_client() as client:
        response = client.get("/healthz")
        data = response.get_json()
        assert response.status_code == 503
        assert data["ok"] is False
        assert data["db"] == "down"
        assert "db_error" in data
