r"""backend/tests/test_data_api.py"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.main import app  # noqa: E402
from backend.app.services.forecasting_service import ForecastingService  # noqa: E402

client = TestClient(app)


@pytest.fixture()
def service(monkeypatch, tmp_path: Path) -> ForecastingService:
    from backend.app.api.v1 import data as data_api

    stub = ForecastingService(
        history_path=str(tmp_path / "history.json"),
        settings_path=str(tmp_path / "settings.yaml"),
        autoload=False,
    )
    monkeypatch.setattr(data_api, "_forecast_service", stub)
    return stub


def test_ingest_history(service: ForecastingService) -> None:
    payload = [
        {"date": "2024-01-08", "total": 120, "slots": {"08-10": 120}},
        {"date": "2024-01-01", "total": 100, "slots": {"08-10": 100}},
        {"date": "2024-01-15", "total": "n/a", "special": "promo"},
    ]

    response = client.post("/api/v1/data/history", json=payload)

    assert response.status_code == 200
    summary = response.json()
    assert summary["history_length"] == 3
    assert summary["training_length"] == 2
    assert summary["last_date"] == "2024-01-15"
    assert summary["error_stats"]["count"] == 1
    assert service.engine.level_for_weekday(1) == pytest.approx(106.0)


def test_reload_missing_history(service: ForecastingService) -> None:
    response = client.post("/api/v1/data/reload")

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "data_missing"


def test_reload_history_file(service: ForecastingService) -> None:
    Path(service.history_path).write_text(
        json.dumps([{"date": "2024-01-01", "total": 5}, {"date": "2024-01-02", "total": 6}]),
        encoding="utf-8",
    )

    response = client.post("/api/v1/data/reload")

    assert response.status_code == 200
    assert response.json()["history_length"] == 2


def test_reload_malformed_history(service: ForecastingService) -> None:
    Path(service.history_path).write_text("{}", encoding="utf-8")

    response = client.post("/api/v1/data/reload")

    assert response.status_code == 400


def test_validate_ok(monkeypatch, tmp_path: Path) -> None:
    history = tmp_path / "history.json"
    history.write_text(
        json.dumps(
            [
                {"date": "2024-01-01", "total": 10, "slots": {"08-10": 10}},
                {"date": "2024-01-02", "total": 12, "slots": {"08-10": 12}},
            ]
        ),
        encoding="utf-8",
    )

    from backend.app.api.v1 import data as data_api

    monkeypatch.setattr(data_api._validation_service, "history_path", str(history))

    response = client.get("/api/v1/data/validate")
    assert response.status_code == 200
    payload = response.json()
    assert isinstance(payload["checks"], list)
    assert payload["ok"] is True
