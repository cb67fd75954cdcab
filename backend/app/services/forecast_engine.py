r"""backend\app\services\forecast_engine.py

Per-weekday delivery volume forecasting.

The engine groups the order history by day of the week and keeps, for each
weekday, an exponentially weighted moving average (EWMA) of the daily total
and a static split of that total across time slots.  Residuals of the
one-step-ahead EWMA give the uncertainty band of each forecast, and the same
residuals aggregated by position within the month measure the calendar bias
of the model.

Weekdays are numbered 0 = Sunday ... 6 = Saturday throughout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Iterator, Mapping, Optional, Sequence

import numpy as np

from ..models.schemas import (
    BacktestRow,
    CalendarZone,
    ErrorStats,
    HistoryDay,
    Prediction,
    ZoneBias,
    parse_day,
    sunday_weekday,
)

LOGGER = logging.getLogger(__name__)

WEEKDAYS: int = 7


# ---------------------------------------------------------------------------
# Helper utilities (kept top-level for straightforward unit testing)


def calendar_zone(day: date) -> CalendarZone:
    """Return the calendar zone of ``day`` from its day of the month.

    * richesse: 28th to end of month, and 1st to 5th
    * croisiere: 6th to 20th
    * economie: 21st to 27th
    """
    dom = day.day
    if dom >= 28 or dom <= 5:
        return CalendarZone.RICHESSE
    if dom <= 20:
        return CalendarZone.CROISIERE
    return CalendarZone.ECONOMIE


def compute_error_stats(residuals: Sequence[float], pct_errors: Sequence[float]) -> ErrorStats:
    """Summarise signed residuals and absolute relative errors.

    ``std_dev`` is the sample standard deviation of the signed residuals with
    the denominator floored at 1.
    """
    n = len(residuals)
    if n == 0:
        return ErrorStats()

    errors = np.asarray(residuals, dtype=float)
    mae = float(np.abs(errors).sum() / n)
    mape = float(np.sum(pct_errors) / len(pct_errors) * 100) if len(pct_errors) else 0.0
    mean = errors.sum() / n
    var_sum = float(((errors - mean) ** 2).sum())
    std_dev = float(np.sqrt(var_sum / max(n - 1, 1)))
    return ErrorStats(mae=mae, mape=mape, std_dev=std_dev, count=n)


def compute_zone_bias(signed_pct: Sequence[float]) -> ZoneBias:
    n = len(signed_pct)
    if n == 0:
        return ZoneBias()
    return ZoneBias(bias_pct=float(np.sum(signed_pct) / n * 100), count=n)


@dataclass(frozen=True, slots=True)
class _Step:
    day: HistoryDay
    total: float
    prediction: Optional[float]
    level: Optional[float]
    trained: bool


def replay_one_step_ahead(
    days: Iterable[HistoryDay],
    alpha: float,
    observe_only: Callable[[HistoryDay], bool] | None = None,
) -> Iterator[_Step]:
    """Walk a weekday group chronologically, yielding the EWMA forecast made
    before each day was observed.

    The first trained day seeds the level and has no prediction.  Days
    matching ``observe_only`` get a prediction but leave the level untouched.
    """
    level: Optional[float] = None
    for day in days:
        total = day.total
        prediction = level
        if observe_only is not None and observe_only(day):
            yield _Step(day=day, total=total, prediction=prediction, level=level, trained=False)
            continue
        if level is None:
            level = total
        else:
            level = alpha * total + (1 - alpha) * level
        yield _Step(day=day, total=total, prediction=prediction, level=level, trained=True)


# ---------------------------------------------------------------------------
# Trained state


def _empty_bias() -> dict[CalendarZone, ZoneBias]:
    return {zone: ZoneBias() for zone in CalendarZone}


@dataclass(frozen=True, slots=True)
class _TrainedState:
    history: tuple[HistoryDay, ...] = ()
    training: tuple[HistoryDay, ...] = ()
    levels: tuple[Optional[float], ...] = (None,) * WEEKDAYS
    slot_profiles: tuple[dict[str, float], ...] = ({},) * WEEKDAYS
    error_by_weekday: tuple[Optional[ErrorStats], ...] = (None,) * WEEKDAYS
    error_stats: ErrorStats = field(default_factory=ErrorStats)
    calendar_bias: dict[CalendarZone, ZoneBias] = field(default_factory=_empty_bias)
    backtest: tuple[BacktestRow, ...] = ()
    backtest_index: dict[date, BacktestRow] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Core engine


class ForecastEngine:
    """Train per-weekday trend and slot models and answer forecast queries.

    ``load_data`` trains synchronously and replaces the whole trained state;
    every other public method is a read.
    """

    DEFAULT_ALPHA: float = 0.3

    def __init__(
        self,
        alpha: float | None = None,
        special_days: Mapping[str, str] | None = None,
    ) -> None:
        self.alpha = float(self.DEFAULT_ALPHA if alpha is None else alpha)
        if not 0.0 < self.alpha <= 1.0:
            raise ValueError("alpha must be in the interval (0, 1]")
        self.special_days: dict[str, str] = {
            str(key)[:10]: str(tag) for key, tag in (special_days or {}).items() if tag
        }
        self._state = _TrainedState()

    # ------------------------------------------------------------------
    def _is_special(self, day: HistoryDay) -> bool:
        if day.special and day.special != "none":
            return True
        return day.date.isoformat() in self.special_days

    # ------------------------------------------------------------------
    def _ingest(self, records: Iterable[Mapping[str, Any] | HistoryDay]) -> list[HistoryDay]:
        days: list[HistoryDay] = []
        for raw in records:
            try:
                days.append(HistoryDay.from_raw(raw))
            except (ValueError, TypeError, AttributeError) as exc:
                LOGGER.warning("Skipping history record without a usable date: %r (%s)", raw, exc)
        days.sort(key=lambda d: d.date)
        return days

    # ------------------------------------------------------------------
    @staticmethod
    def _slot_profile(days: Sequence[HistoryDay]) -> dict[str, float]:
        slot_sums: dict[str, float] = {}
        total_sum = 0.0
        for day in days:
            for slot, value in day.slots.items():
                slot_sums[slot] = slot_sums.get(slot, 0.0) + value
                total_sum += value
        if total_sum <= 0:
            return {}
        return {slot: value / total_sum for slot, value in slot_sums.items()}

    # ------------------------------------------------------------------
    def load_data(self, records: Iterable[Mapping[str, Any] | HistoryDay]) -> None:
        """Ingest day records and retrain every model from scratch."""

        history = tuple(self._ingest(records))
        training = tuple(day for day in history if not self._is_special(day))
        # Everything was filtered out: train on the raw history instead.
        fallback = not training
        base = history if fallback else training
        observe_only = None if fallback else self._is_special

        groups: list[list[HistoryDay]] = [[] for _ in range(WEEKDAYS)]
        replay_groups: list[list[HistoryDay]] = [[] for _ in range(WEEKDAYS)]
        for day in base:
            groups[day.weekday].append(day)
        for day in history:
            replay_groups[day.weekday].append(day)

        levels: list[Optional[float]] = [None] * WEEKDAYS
        profiles: list[dict[str, float]] = [{} for _ in range(WEEKDAYS)]
        error_by_weekday: list[Optional[ErrorStats]] = [None] * WEEKDAYS
        all_residuals: list[float] = []
        all_pct: list[float] = []
        signed_by_zone: dict[CalendarZone, list[float]] = {zone: [] for zone in CalendarZone}
        rows: list[BacktestRow] = []

        for wd, days in enumerate(replay_groups):
            if not days:
                continue
            residuals: list[float] = []
            pct_errors: list[float] = []
            for step in replay_one_step_ahead(days, self.alpha, observe_only):
                zone = calendar_zone(step.day.date)
                error = abs_error = abs_pct = None
                if step.prediction is not None:
                    error = step.total - step.prediction
                    abs_error = abs(error)
                    if step.total > 0:
                        abs_pct = abs_error / step.total
                    # Special days are reported but never feed the statistics.
                    if step.trained:
                        residuals.append(error)
                        if abs_pct is not None:
                            pct_errors.append(abs_pct)
                            signed_by_zone[zone].append(error / step.total)
                levels[wd] = step.level
                rows.append(
                    BacktestRow(
                        date=step.day.date,
                        weekday=step.day.weekday,
                        total=step.total,
                        prediction=step.prediction,
                        error=error,
                        abs_error=abs_error,
                        abs_pct_error=abs_pct,
                        special=step.day.special,
                        calendar_zone=zone,
                    )
                )
            profiles[wd] = self._slot_profile(groups[wd])
            if groups[wd]:
                error_by_weekday[wd] = compute_error_stats(residuals, pct_errors)
            all_residuals.extend(residuals)
            all_pct.extend(pct_errors)

        rows.sort(key=lambda row: row.date)
        index: dict[date, BacktestRow] = {}
        for row in rows:
            index.setdefault(row.date, row)

        self._state = _TrainedState(
            history=history,
            training=base,
            levels=tuple(levels),
            slot_profiles=tuple(profiles),
            error_by_weekday=tuple(error_by_weekday),
            error_stats=compute_error_stats(all_residuals, all_pct),
            calendar_bias={
                zone: compute_zone_bias(values) for zone, values in signed_by_zone.items()
            },
            backtest=tuple(rows),
            backtest_index=index,
        )
        LOGGER.info(
            "Forecast engine trained: history=%d training=%d weekdays=%d alpha=%.3f",
            len(history),
            len(base),
            sum(1 for level in levels if level is not None),
            self.alpha,
        )

    # ------------------------------------------------------------------
    @property
    def history(self) -> tuple[HistoryDay, ...]:
        """All ingested days, special ones included, in chronological order."""
        return tuple(day.model_copy(deep=True) for day in self._state.history)

    @property
    def history_length(self) -> int:
        return len(self._state.history)

    @property
    def training_length(self) -> int:
        return len(self._state.training)

    @property
    def last_date(self) -> Optional[date]:
        history = self._state.history
        return history[-1].date if history else None

    def level_for_weekday(self, weekday: int) -> Optional[float]:
        """Return the trained EWMA level, or ``None`` when the weekday has no data."""
        return self._state.levels[weekday % WEEKDAYS]

    def slot_profile_for_weekday(self, weekday: int) -> dict[str, float]:
        return dict(self._state.slot_profiles[weekday % WEEKDAYS])

    # ------------------------------------------------------------------
    def get_error_stats(self) -> ErrorStats:
        """Return the error statistics pooled over every weekday."""
        return self._state.error_stats.model_copy()

    def get_error_stats_for_weekday(self, weekday: int) -> ErrorStats:
        """Return the weekday's error statistics, or the global ones when the
        weekday has no residual."""
        stats = self._state.error_by_weekday[weekday % WEEKDAYS]
        if stats is not None and stats.count > 0:
            return stats.model_copy()
        return self.get_error_stats()

    def get_calendar_bias_summary(self) -> dict[CalendarZone, ZoneBias]:
        return {zone: bias.model_copy() for zone, bias in self._state.calendar_bias.items()}

    # ------------------------------------------------------------------
    def get_backtest_series(self) -> list[BacktestRow]:
        """Return the one-step-ahead replay of the history, sorted by date.

        The first trained occurrence of each weekday has no prediction.
        Special days appear with the prediction the model held at the time,
        but did not update it.
        """
        return [row.model_copy() for row in self._state.backtest]

    def get_backtest_for_date(self, day: date | str) -> Optional[BacktestRow]:
        row = self._state.backtest_index.get(parse_day(day))
        return row.model_copy() if row is not None else None

    # ------------------------------------------------------------------
    def predict_day(self, day: date | str) -> Prediction:
        target = parse_day(day)
        wd = sunday_weekday(target)
        total = max(0.0, self._state.levels[wd] or 0.0)

        std_dev = self.get_error_stats_for_weekday(wd).std_dev or 0.0
        lower = max(0.0, total - std_dev)
        upper = total + std_dev

        profile = self._state.slot_profiles[wd]
        slots = {slot: total * share for slot, share in profile.items()}

        return Prediction(date=target, weekday=wd, total=total, lower=lower, upper=upper, slots=slots)

    def predict_horizon(self, start: date | str, horizon_days: int) -> list[Prediction]:
        """Predict ``horizon_days`` consecutive days from ``start`` inclusive.

        Each day is predicted independently from the trained weekday levels.
        """
        first = parse_day(start)
        return [self.predict_day(first + timedelta(days=offset)) for offset in range(max(horizon_days, 0))]
