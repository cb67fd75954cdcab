from __future__ import annotations

import json
import sys
from datetime import date, timedelta
from pathlib import Path

import pytest
import yaml

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.services.forecasting_service import ForecastingService


def _write_history_stub(tmp_path: Path, days: int = 42) -> Path:
    start = date(2024, 1, 1)
    records = []
    for offset in range(days):
        day = start + timedelta(days=offset)
        total = 200 + 15 * (offset % 7) + (offset % 3)
        records.append(
            {
                "date": day.isoformat(),
                "total": total,
                "slots": {"08-10": total / 2, "14-16": total / 2},
                "special": "promo" if offset == 20 else None,
            }
        )
    path = tmp_path / "history.json"
    path.write_text(json.dumps(records), encoding="utf-8")
    return path


def _write_settings(tmp_path: Path, **settings: object) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(settings), encoding="utf-8")
    return path


def test_service_trains_from_history_file(tmp_path: Path) -> None:
    history = _write_history_stub(tmp_path)
    settings = _write_settings(tmp_path, alpha=0.5, default_horizon_days=10)

    service = ForecastingService(history_path=str(history), settings_path=str(settings))
    summary = service.summary()

    assert summary.history_length == 42
    assert summary.training_length == 41
    assert summary.last_date == date(2024, 2, 11)
    assert summary.alpha == pytest.approx(0.5)
    assert summary.error_stats.count > 0


def test_forecast_defaults_to_day_after_history(tmp_path: Path) -> None:
    history = _write_history_stub(tmp_path)
    settings = _write_settings(tmp_path, default_horizon_days=10)
    service = ForecastingService(history_path=str(history), settings_path=str(settings))

    result = service.forecast()

    assert result.start == date(2024, 2, 12)
    assert result.horizon_days == 10
    assert len(result.forecast) == 10
    dates = [point.date for point in result.forecast]
    assert dates == sorted(dates), "Forecast dates should be strictly increasing"
    assert all(point.lower <= point.total <= point.upper for point in result.forecast)
    assert all(point.reliability is not None and point.reliability <= 100 for point in result.forecast)


def test_forecast_with_calendar_bias(tmp_path: Path) -> None:
    history = _write_history_stub(tmp_path)
    settings = _write_settings(tmp_path, calendar_bias_min_count=1, calendar_bias_prudence=1.0)
    service = ForecastingService(history_path=str(history), settings_path=str(settings))

    neutral = service.forecast(start=date(2024, 3, 1), horizon_days=30)
    adjusted = service.forecast(start=date(2024, 3, 1), horizon_days=30, use_calendar_bias=True)

    assert adjusted.calendar_bias_applied is True
    assert [p.date for p in adjusted.forecast] == [p.date for p in neutral.forecast]
    for base, corrected in zip(neutral.forecast, adjusted.forecast):
        if base.total:
            assert 0.8 <= corrected.total / base.total <= 1.2


def test_forecast_rejects_non_positive_horizon(tmp_path: Path) -> None:
    service = ForecastingService(
        history_path=str(tmp_path / "none.json"),
        settings_path=str(tmp_path / "none.yaml"),
    )

    with pytest.raises(ValueError):
        service.forecast(horizon_days=0)


def test_missing_history_serves_untrained_model(tmp_path: Path) -> None:
    service = ForecastingService(
        history_path=str(tmp_path / "none.json"),
        settings_path=str(tmp_path / "none.yaml"),
    )

    assert service.summary().history_length == 0
    assert service.default_start() == date.today()
    assert service.backtest() == []
    with pytest.raises(FileNotFoundError):
        service.reload()


def test_invalid_alpha_in_settings(tmp_path: Path) -> None:
    settings = _write_settings(tmp_path, alpha=2.0)

    with pytest.raises(ValueError):
        ForecastingService(history_path=str(tmp_path / "none.json"), settings_path=str(settings))


def test_backtest_filters(tmp_path: Path) -> None:
    history = _write_history_stub(tmp_path)
    service = ForecastingService(history_path=str(history), settings_path=str(tmp_path / "none.yaml"))

    rows = service.backtest()
    usable = service.backtest(usable_only=True)
    recent = service.backtest(limit=5, usable_only=True)

    assert len(rows) == 42
    assert any(row.special == "promo" for row in rows)
    assert all(row.prediction is not None and not row.special for row in usable)
    assert len(usable) == 42 - 7 - 1
    assert recent == usable[-5:]


def test_ingest_and_reconfigure(tmp_path: Path) -> None:
    settings = _write_settings(tmp_path, alpha=0.3)
    service = ForecastingService(
        history_path=str(tmp_path / "none.json"), settings_path=str(settings)
    )

    service.ingest(
        [
            {"date": "2024-01-01", "total": 100},
            {"date": "2024-01-08", "total": 200},
        ]
    )
    assert service.predict_day(date(2024, 1, 15)).total == pytest.approx(130.0)

    _write_settings(tmp_path, alpha=1.0)
    summary = service.reconfigure()

    assert summary.alpha == pytest.approx(1.0)
    assert summary.history_length == 2
    assert service.predict_day(date(2024, 1, 15)).total == pytest.approx(200.0)


def test_bad_setting_leaves_configuration_untouched(tmp_path: Path) -> None:
    settings = _write_settings(
        tmp_path, alpha=0.3, special_days={"2024-01-01": "promo"}, calendar_bias_min_count=4
    )
    service = ForecastingService(
        history_path=str(tmp_path / "none.json"), settings_path=str(settings)
    )

    _write_settings(
        tmp_path,
        alpha=0.9,
        special_days={"2024-02-01": "ferie"},
        calendar_bias_min_count="x",
    )
    with pytest.raises(ValueError):
        service.reconfigure()
    with pytest.raises(ValueError):
        service.reload(missing_ok=True)

    assert service.alpha == pytest.approx(0.3)
    assert service.special_days == {"2024-01-01": "promo"}
    assert service.min_count == 4
    assert service.engine.alpha == pytest.approx(0.3)
