r"""backend\app\services\adjustments.py

Post-processing applied to engine predictions before they are served.

The engine itself is calendar neutral.  When enough residuals have been
collected for a zone of the month, a damped share of the measured bias can be
applied to the predictions of that zone.
"""

from __future__ import annotations

import math
from typing import Iterable, Mapping, Optional

from ..models.schemas import CalendarZone, ErrorStats, Prediction, ZoneBias
from .forecast_engine import calendar_zone

DEFAULT_PRUDENCE: float = 0.5
DEFAULT_CLAMP: tuple[float, float] = (0.8, 1.2)
DEFAULT_MIN_COUNT: int = 5


def bias_factor(
    bias: ZoneBias | None,
    prudence: float = DEFAULT_PRUDENCE,
    clamp: tuple[float, float] = DEFAULT_CLAMP,
    min_count: int = DEFAULT_MIN_COUNT,
) -> float:
    """Return the multiplicative correction for a zone bias.

    Zones with fewer than ``min_count`` residuals are left untouched.
    """
    if bias is None or not bias.count or bias.count < min_count:
        return 1.0
    factor = 1 + prudence * (bias.bias_pct / 100)
    if not math.isfinite(factor):
        factor = 1.0
    low, high = clamp
    return max(low, min(high, factor))


def apply_calendar_bias(
    predictions: Iterable[Prediction],
    summary: Mapping[CalendarZone, ZoneBias],
    prudence: float = DEFAULT_PRUDENCE,
    clamp: tuple[float, float] = DEFAULT_CLAMP,
    min_count: int = DEFAULT_MIN_COUNT,
) -> list[Prediction]:
    """Scale predictions by the damped bias of their calendar zone."""

    adjusted: list[Prediction] = []
    for pred in predictions:
        factor = bias_factor(summary.get(calendar_zone(pred.date)), prudence, clamp, min_count)
        if factor == 1.0:
            adjusted.append(pred.model_copy(deep=True))
            continue
        adjusted.append(
            pred.model_copy(
                update={
                    "total": pred.total * factor,
                    "lower": pred.lower * factor,
                    "upper": pred.upper * factor,
                    "slots": {slot: value * factor for slot, value in pred.slots.items()},
                }
            )
        )
    return adjusted


def reliability_pct(stats: ErrorStats) -> Optional[float]:
    """Return ``100 - MAPE``, or ``None`` when no percentage error was measured."""
    if not stats.mape:
        return None
    return 100 - stats.mape
