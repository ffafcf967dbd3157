from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from inbox_service.infrastructure.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz(request: Request) -> dict[str, str | int]:
    """Liveness plus the size of the in-process connection registry."""
    registry = request.app.state.hub.registry
    return {
        "status": "ok",
        "connections": len(registry),
        "rooms": registry.room_count,
    }


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    checks: dict[str, str] = {}

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        checks["message_store"] = "ok"
    except Exception as exc:  # noqa: BLE001
        logger.warning("Readiness: message store unreachable: %s", exc)
        checks["message_store"] = str(exc)

    try:
        await request.app.state.redis.ping()
        checks["account_events"] = "ok"
    except Exception as exc:  # noqa: BLE001
        logger.warning("Readiness: redis unreachable: %s", exc)
        checks["account_events"] = str(exc)

    ready = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "unavailable", "checks": checks},
    )
