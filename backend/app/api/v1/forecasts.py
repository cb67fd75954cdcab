"""Routes for delivery volume forecasts."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from ...models import schemas
from ...services.forecasting_service import get_forecasting_service

LOGGER = logging.getLogger(__name__)

router = APIRouter()

MIN_FORECAST_HORIZON_DAYS = 1
MAX_FORECAST_HORIZON_DAYS = 90

_forecast_service = get_forecasting_service()


def _error_payload(code: str, message: str) -> dict[str, str]:
    """Return a standardised error payload."""

    return {"error": code, "message": message}


def _parse_day(raw: str) -> date:
    """Parse an ISO day from the URL or query string."""

    try:
        return schemas.parse_day(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_payload("invalid_date", f"'{raw}' is not an ISO date (YYYY-MM-DD)."),
        ) from exc


def _parse_horizon(raw_horizon: Optional[int]) -> Optional[int]:
    """Validate the requested forecast horizon."""

    if raw_horizon is None:
        return None
    if raw_horizon < MIN_FORECAST_HORIZON_DAYS or raw_horizon > MAX_FORECAST_HORIZON_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_payload(
                "invalid_horizon",
                (
                    "horizon_days must be between "
                    f"{MIN_FORECAST_HORIZON_DAYS} and {MAX_FORECAST_HORIZON_DAYS} days."
                ),
            ),
        )
    return raw_horizon


@router.get("/forecasts", response_model=schemas.ForecastResponse)
def get_forecast(
    start: Optional[str] = Query(
        None, description="First forecast day; defaults to the day after the last history day"
    ),
    horizon_days: Optional[int] = Query(None, description="Forecast horizon in days"),
    calendar_bias: bool = Query(
        False, description="Apply the measured calendar-zone bias to the predictions"
    ),
) -> schemas.ForecastResponse:
    """Return the forecast over a horizon of consecutive days."""

    LOGGER.info("Forecast request received start=%s horizon=%s", start, horizon_days)
    first = _parse_day(start) if start else None
    horizon = _parse_horizon(horizon_days)

    try:
        return _forecast_service.forecast(
            start=first, horizon_days=horizon, use_calendar_bias=calendar_bias
        )
    except ValueError as exc:
        LOGGER.warning("Forecast rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_payload("invalid_request", str(exc)),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive programming
        LOGGER.exception("Unexpected error while forecasting from %s", start)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_error_payload("forecast_failed", "An unexpected error occurred while forecasting."),
        ) from exc


@router.get("/forecasts/{day}", response_model=schemas.Prediction)
def get_day_forecast(day: str) -> schemas.Prediction:
    """Return the forecast for a single day."""

    return _forecast_service.predict_day(_parse_day(day))
