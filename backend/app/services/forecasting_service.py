r"""backend\app\services\forecasting_service.py

Delivery forecasting service shared by the API routers.

The service owns one trained :class:`ForecastEngine`.  Retraining builds a
brand new engine and swaps the reference under a lock, so readers always see
a fully trained model.  Business parameters come from ``settings.yaml``.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, timedelta
from functools import lru_cache
from typing import Any, Iterable, Mapping, Optional

from ..core.config import get_settings, load_yaml
from ..models.schemas import (
    BacktestRow,
    CalendarZone,
    ErrorStats,
    ForecastPoint,
    ForecastResponse,
    HistoryDay,
    HistorySummary,
    Prediction,
    ZoneBias,
)
from .adjustments import (
    DEFAULT_CLAMP,
    DEFAULT_MIN_COUNT,
    DEFAULT_PRUDENCE,
    apply_calendar_bias,
    reliability_pct,
)
from .forecast_engine import ForecastEngine
from .io_utils import load_history

LOGGER = logging.getLogger(__name__)


class ForecastingService:
    """Configure, train and query the delivery forecast engine."""

    DEFAULT_HORIZON_DAYS: int = 14

    def __init__(
        self,
        history_path: str | None = None,
        settings_path: str | None = None,
        autoload: bool = True,
    ) -> None:
        settings = get_settings()
        self.history_path = history_path or settings.history_path
        self.settings_path = settings_path or settings.settings_path

        self.alpha: float = ForecastEngine.DEFAULT_ALPHA
        self.special_days: dict[str, str] = {}
        self.prudence: float = DEFAULT_PRUDENCE
        self.clamp: tuple[float, float] = DEFAULT_CLAMP
        self.min_count: int = DEFAULT_MIN_COUNT
        self.default_horizon: int = self.DEFAULT_HORIZON_DAYS

        self._lock = threading.Lock()
        self._load_configuration()
        self._engine = self._new_engine()

        if autoload:
            self.reload(missing_ok=True)

    # ------------------------------------------------------------------
    def _load_configuration(self) -> None:
        settings = load_yaml(self.settings_path)
        # Parse every key before assigning so a bad value leaves the previous configuration intact.
        alpha = float(settings.get("alpha", self.alpha))
        if not 0.0 < alpha <= 1.0:
            raise ValueError("alpha must be in the interval (0, 1]")
        special_days = dict(settings.get("special_days") or {})
        prudence = float(settings.get("calendar_bias_prudence", self.prudence))
        clamp = (
            float(settings.get("calendar_bias_clamp_min", self.clamp[0])),
            float(settings.get("calendar_bias_clamp_max", self.clamp[1])),
        )
        min_count = int(settings.get("calendar_bias_min_count", self.min_count))
        default_horizon = int(settings.get("default_horizon_days", self.default_horizon))

        self.alpha = alpha
        self.special_days = special_days
        self.prudence = prudence
        self.clamp = clamp
        self.min_count = min_count
        self.default_horizon = default_horizon

    # ------------------------------------------------------------------
    def _new_engine(self) -> ForecastEngine:
        return ForecastEngine(alpha=self.alpha, special_days=self.special_days)

    # ------------------------------------------------------------------
    @property
    def engine(self) -> ForecastEngine:
        return self._engine

    # ------------------------------------------------------------------
    def ingest(self, records: Iterable[Mapping[str, Any] | HistoryDay]) -> HistorySummary:
        """Train a fresh engine on ``records`` and publish it."""

        engine = self._new_engine()
        engine.load_data(records)
        with self._lock:
            self._engine = engine
        return self.summary()

    # ------------------------------------------------------------------
    def reload(self, missing_ok: bool = False) -> HistorySummary:
        """Re-read the configuration and retrain from the history file."""

        with self._lock:
            self._load_configuration()
        try:
            records = load_history(self.history_path)
        except FileNotFoundError:
            if not missing_ok:
                raise
            LOGGER.warning("History file %s not found; serving an untrained model", self.history_path)
            records = []
        return self.ingest(records)

    # ------------------------------------------------------------------
    def reconfigure(self) -> HistorySummary:
        """Re-read the configuration and retrain on the current history."""

        with self._lock:
            self._load_configuration()
        return self.ingest(self._engine.history)

    # ------------------------------------------------------------------
    def default_start(self) -> date:
        last = self._engine.last_date
        return last + timedelta(days=1) if last is not None else date.today()

    # ------------------------------------------------------------------
    def forecast(
        self,
        start: date | None = None,
        horizon_days: int | None = None,
        use_calendar_bias: bool = False,
    ) -> ForecastResponse:
        """Forecast consecutive days, optionally corrected for calendar bias."""

        engine = self._engine
        first = start or self.default_start()
        horizon = int(horizon_days if horizon_days is not None else self.default_horizon)
        if horizon <= 0:
            raise ValueError("horizon_days must be a positive integer")

        predictions = engine.predict_horizon(first, horizon)
        if use_calendar_bias:
            predictions = apply_calendar_bias(
                predictions,
                engine.get_calendar_bias_summary(),
                prudence=self.prudence,
                clamp=self.clamp,
                min_count=self.min_count,
            )

        points = [
            ForecastPoint(
                **pred.model_dump(),
                reliability=reliability_pct(engine.get_error_stats_for_weekday(pred.weekday)),
            )
            for pred in predictions
        ]
        LOGGER.info("Forecast generated start=%s horizon=%s calendar_bias=%s", first, horizon, use_calendar_bias)
        return ForecastResponse(
            start=first,
            horizon_days=horizon,
            calendar_bias_applied=use_calendar_bias,
            forecast=points,
        )

    # ------------------------------------------------------------------
    def predict_day(self, day: date) -> Prediction:
        return self._engine.predict_day(day)

    # ------------------------------------------------------------------
    def error_stats(self, weekday: Optional[int] = None) -> ErrorStats:
        if weekday is None:
            return self._engine.get_error_stats()
        return self._engine.get_error_stats_for_weekday(weekday)

    # ------------------------------------------------------------------
    def calendar_bias(self) -> dict[CalendarZone, ZoneBias]:
        return self._engine.get_calendar_bias_summary()

    # ------------------------------------------------------------------
    def backtest(self, limit: Optional[int] = None, usable_only: bool = False) -> list[BacktestRow]:
        """Return backtest rows, optionally only those with a prediction on a
        regular day, optionally only the most recent ``limit``."""

        rows = self._engine.get_backtest_series()
        if usable_only:
            rows = [row for row in rows if row.prediction is not None and not row.special]
        if limit is not None:
            rows = rows[-limit:] if limit > 0 else []
        return rows

    # ------------------------------------------------------------------
    def backtest_for_date(self, day: date) -> Optional[BacktestRow]:
        return self._engine.get_backtest_for_date(day)

    # ------------------------------------------------------------------
    def summary(self) -> HistorySummary:
        engine = self._engine
        return HistorySummary(
            history_length=engine.history_length,
            training_length=engine.training_length,
            last_date=engine.last_date,
            alpha=engine.alpha,
            error_stats=engine.get_error_stats(),
        )


@lru_cache(maxsize=None)
def get_forecasting_service() -> ForecastingService:
    """Return the process-wide service, trained on first use."""
    return ForecastingService()
