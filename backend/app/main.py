r"""backend\app\main.py

Main entrypoint for the FastAPI application.

The API exposes the delivery volume forecast, the model error and calendar
bias statistics, and the backtest replay of the order history.  A health
endpoint is also provided for readiness/liveness checks.  Configuration is
read from environment variables and YAML files in `configs/`.
"""


import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

# Load .env from repo root before settings are read
BASE_DIR = Path(__file__).resolve().parents[2]  # repo root
load_dotenv(BASE_DIR / ".env")

from .api.v1 import backtest, configs, data, forecasts, health, stats  # noqa: E402
from .core.observability import TokenAndRateLimitMiddleware, metrics_endpoint  # noqa: E402
from .services.forecasting_service import get_forecasting_service  # noqa: E402

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

_summary = get_forecasting_service().summary()
logging.getLogger(__name__).info(
    "Forecast model ready: history=%s training=%s alpha=%s",
    _summary.history_length,
    _summary.training_length,
    _summary.alpha,
)

app = FastAPI(title="Delivery Forecast API", version="0.1.0")

# Allow cross-origin requests from the dashboard (and others).
origins_env = os.getenv("CORS_ORIGINS", "")
origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # In production specify your dashboard domain(s)
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TokenAndRateLimitMiddleware)

# Include versioned routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(forecasts.router, prefix="/api/v1")
app.include_router(stats.router, prefix="/api/v1")
app.include_router(backtest.router, prefix="/api/v1")
app.include_router(data.router, prefix="/api/v1")
app.include_router(configs.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
def _root() -> RedirectResponse:
    """Redirect the root path to the interactive docs."""

    return RedirectResponse(url="/docs")


@app.get("/metrics", include_in_schema=False)
async def _metrics() -> Response:
    """Expose Prometheus metrics."""

    return metrics_endpoint()
