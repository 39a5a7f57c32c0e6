"""
API Routes — health and shared dependencies.

Handlers stay thin: parse the request, call one service method, wrap the
result. Domain errors are mapped to status codes by the app-level handler.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request

from tradetrack.schemas import HealthResponse
from tradetrack.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> Services:
    """The service container built at startup (overridable in tests)."""
    return request.app.state.services


def ok(data: Any = None, **extra) -> dict:
    body = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def dump(models) -> list[dict]:
    return [m.to_doc() for m in models]


# ── Health ──────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health(services: Services = Depends(get_services)):
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc).isoformat(),
        store=type(services.store).__name__,
    )
