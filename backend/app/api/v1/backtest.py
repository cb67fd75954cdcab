r"""backend\app\api\v1\backtest.py

Backtesting routes: the one-step-ahead replay of the order history."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from .forecasts import _error_payload, _parse_day
from ...models import schemas
from ...services.forecasting_service import get_forecasting_service

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_forecast_service = get_forecasting_service()


@router.get("/backtest", response_model=list[schemas.BacktestRow])
def backtest(
    limit: Optional[int] = Query(
        None, ge=1, le=3650, description="Only return the most recent rows."
    ),
    usable_only: bool = Query(
        False,
        description="When true, drop rows without a prediction and special days.",
    ),
) -> list[schemas.BacktestRow]:
    """Return what the model would have predicted for every past day."""

    return _forecast_service.backtest(limit=limit, usable_only=usable_only)


@router.get("/backtest/{day}", response_model=schemas.BacktestRow)
def backtest_for_date(day: str) -> schemas.BacktestRow:
    """Return the backtest row of a single day."""

    target = _parse_day(day)
    row = _forecast_service.backtest_for_date(target)
    if row is None:
        LOGGER.info("No backtest row for %s", target)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=_error_payload("not_found", f"No backtest row for {target.isoformat()}."),
        )
    return row
