r"""backend\app\api\v1\data.py"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from .forecasts import _error_payload
from ...models import schemas
from ...services.forecasting_service import get_forecasting_service
from ...services.validation_service import ValidationService

LOGGER = logging.getLogger(__name__)

router = APIRouter()
_validation_service = ValidationService()
_forecast_service = get_forecasting_service()


@router.get("/data/validate")
def validate() -> dict:
    return _validation_service.run()


@router.post("/data/history", response_model=schemas.HistorySummary)
def ingest_history(days: list[schemas.HistoryDayIn]) -> schemas.HistorySummary:
    """Retrain the model on the supplied day records."""

    LOGGER.info("Ingesting %d history records", len(days))
    return _forecast_service.ingest(day.model_dump(exclude_none=True) for day in days)


@router.post("/data/reload", response_model=schemas.HistorySummary)
def reload_history() -> schemas.HistorySummary:
    """Retrain the model from the history file on disk."""

    try:
        return _forecast_service.reload()
    except FileNotFoundError as exc:
        LOGGER.exception("Reload failed: history file missing")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_error_payload("data_missing", str(exc)),
        ) from exc
    except ValueError as exc:
        LOGGER.warning("Reload rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_error_payload("invalid_request", str(exc)),
        ) from exc
