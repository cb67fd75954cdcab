r"""backend\app\api\v1\health.py

Health check endpoints.

Orchestrators and load balancers use `/api/v1/health` to verify that the
service is running; `/api/v1/health/ready` also reports whether a model has
been trained.
"""

from fastapi import APIRouter

from ...services.forecasting_service import get_forecasting_service

router = APIRouter()

_forecast_service = get_forecasting_service()


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Return a basic health indicator."""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness() -> dict[str, object]:
    """Report whether forecasts are backed by any history."""
    history_length = _forecast_service.engine.history_length
    return {"status": "ok" if history_length else "untrained", "history_length": history_length}
