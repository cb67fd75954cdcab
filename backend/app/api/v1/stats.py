r"""backend\app\api\v1\stats.py

Model error and calendar bias statistics."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from ...models import schemas
from ...services.forecasting_service import get_forecasting_service

router = APIRouter()

_forecast_service = get_forecasting_service()


@router.get("/stats/errors", response_model=schemas.ErrorStats)
def error_stats(
    weekday: Optional[int] = Query(
        None, ge=0, le=6, description="0 = Sunday ... 6 = Saturday; omit for global stats"
    ),
) -> schemas.ErrorStats:
    """Return one-step-ahead error statistics, globally or for a weekday."""
    return _forecast_service.error_stats(weekday)


@router.get("/stats/calendar-bias")
def calendar_bias() -> dict[str, schemas.ZoneBias]:
    """Return the mean signed relative error per calendar zone."""
    return {zone.value: bias for zone, bias in _forecast_service.calendar_bias().items()}


@router.get("/stats/summary", response_model=schemas.HistorySummary)
def summary() -> schemas.HistorySummary:
    return _forecast_service.summary()
