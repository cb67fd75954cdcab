r"""backend\app\models\schemas.py

Pydantic models used throughout the engine and the API.

These models serve as both request payload validators and response
serialisation schemas.  The forecast engine returns them directly so the
routers never have to reshape engine output.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class CalendarZone(str, Enum):
    """Position of a day within its month."""

    RICHESSE = "richesse"
    CROISIERE = "croisiere"
    ECONOMIE = "economie"


def sunday_weekday(day: date) -> int:
    """Return the weekday of ``day`` with 0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


def parse_day(value: Any) -> date:
    """Coerce an ISO string, ``date`` or ``datetime`` into a ``date``.

    Raises ``ValueError`` when the value cannot be interpreted as a day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"unsupported date value: {value!r}")


def _as_number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


class HistoryDay(BaseModel):
    """One day of order volume, as ingested by the engine."""

    model_config = ConfigDict(frozen=True)

    date: date
    weekday: int = Field(..., ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    total: float = Field(0.0, description="Total orders for the day")
    slots: Dict[str, float] = Field(default_factory=dict, description="Orders per time slot")
    special: Optional[str] = Field(None, description="Anomaly tag, e.g. 'promo' or 'ferie'")

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any] | "HistoryDay") -> "HistoryDay":
        """Build a day from a loosely-typed record.

        Missing or malformed numbers become ``0``; a missing weekday is
        derived from the date.  Only an unusable ``date`` raises.
        """
        if isinstance(raw, HistoryDay):
            return raw.model_copy(deep=True)

        day = parse_day(raw.get("date"))

        weekday = raw.get("weekday")
        if isinstance(weekday, bool) or not isinstance(weekday, int) or not 0 <= weekday <= 6:
            weekday = sunday_weekday(day)

        raw_slots = raw.get("slots")
        slots: dict[str, float] = {}
        if isinstance(raw_slots, Mapping):
            slots = {str(name): _as_number(value) for name, value in raw_slots.items()}

        special = raw.get("special")
        special = str(special) if special else None

        return cls(
            date=day,
            weekday=weekday,
            total=_as_number(raw.get("total")),
            slots=slots,
            special=special,
        )


class HistoryDayIn(BaseModel):
    """Raw day record accepted by the ingestion endpoint."""

    date: str = Field(..., description="ISO day, YYYY-MM-DD")
    weekday: Optional[int] = None
    total: Optional[Any] = None
    slots: Optional[Dict[str, Any]] = None
    special: Optional[str] = None


class Prediction(BaseModel):
    """Forecast for a single day."""

    date: date
    weekday: int
    total: float = Field(..., description="Predicted total orders")
    lower: float = Field(..., description="Total minus one residual standard deviation, floored at 0")
    upper: float = Field(..., description="Total plus one residual standard deviation")
    slots: Dict[str, float] = Field(default_factory=dict)


class ErrorStats(BaseModel):
    """One-step-ahead residual statistics."""

    mae: float = 0.0
    mape: float = Field(0.0, description="Mean absolute percentage error, in percent")
    std_dev: float = 0.0
    count: int = 0


class ZoneBias(BaseModel):
    """Mean signed relative error for one calendar zone."""

    bias_pct: float = 0.0
    count: int = 0


class BacktestRow(BaseModel):
    """What the model would have predicted for a past day."""

    date: date
    weekday: int
    total: float
    prediction: Optional[float] = None
    error: Optional[float] = None
    abs_error: Optional[float] = None
    abs_pct_error: Optional[float] = None
    special: Optional[str] = None
    calendar_zone: CalendarZone


class ForecastPoint(Prediction):
    """A prediction enriched with the reliability of its weekday."""

    reliability: Optional[float] = Field(
        None, description="100 - MAPE of the weekday model, in percent"
    )


class ForecastResponse(BaseModel):
    """A forecast over a horizon of consecutive days."""

    start: date
    horizon_days: int
    calendar_bias_applied: bool = False
    forecast: List[ForecastPoint]


class HistorySummary(BaseModel):
    """State of the trained model."""

    history_length: int
    training_length: int
    last_date: Optional[date] = None
    alpha: float
    error_stats: ErrorStats
