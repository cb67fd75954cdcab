"""API endpoints for reading and updating the forecasting settings YAML."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import date
from typing import Any, Dict, Optional

import yaml
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field, model_validator

from ...core.config import load_yaml
from ...services.forecasting_service import get_forecasting_service

LOGGER = logging.getLogger(__name__)

router = APIRouter()

_forecast_service = get_forecasting_service()


def _safe_write_yaml(path: str, payload: Dict[str, Any]) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        prefix=".tmp-", suffix=".yaml", dir=directory
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(payload, handle, sort_keys=False)
        shutil.move(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


class SettingsUpdate(BaseModel):
    alpha: Optional[float] = Field(None, gt=0.0, le=1.0)
    special_days: Optional[Dict[str, str]] = None
    calendar_bias_prudence: Optional[float] = Field(None, ge=0.0, le=1.0)
    calendar_bias_min_count: Optional[int] = Field(None, ge=0)
    calendar_bias_clamp_min: Optional[float] = Field(None, gt=0.0, le=1.0)
    calendar_bias_clamp_max: Optional[float] = Field(None, ge=1.0)
    default_horizon_days: Optional[int] = Field(None, ge=1, le=90)

    @model_validator(mode="after")
    def _check_special_days(self) -> "SettingsUpdate":
        for key in (self.special_days or {}):
            try:
                date.fromisoformat(key)
            except ValueError as exc:
                raise ValueError(f"special_days key '{key}' is not an ISO date") from exc
        return self


def _merge_updates(original: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    result = original.copy()
    result.update({k: v for k, v in updates.items() if v is not None})
    return result


@router.get("/configs/settings")
def get_settings() -> Dict[str, Any]:
    return load_yaml(_forecast_service.settings_path)


@router.put("/configs/settings")
def put_settings(body: SettingsUpdate) -> Dict[str, Any]:
    path = _forecast_service.settings_path
    current = load_yaml(path)

    updated = _merge_updates(current, body.model_dump(exclude_none=True))
    if updated == current:
        return current

    try:
        _safe_write_yaml(path, updated)
    except OSError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "write_failed", "message": str(exc)},
        ) from exc

    LOGGER.info("Settings updated (%s); retraining", ", ".join(sorted(body.model_dump(exclude_none=True))))
    _forecast_service.reconfigure()
    return updated
