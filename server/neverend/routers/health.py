"""Health check router."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


async def database_reachable(db: AsyncSession) -> bool:
    """Round-trip a trivial query; False when the database does not answer."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        return False
    return True


@router.post("/ping", response_model=HealthResponse)
async def health_ping(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Health check endpoint.

    Reports ``degraded`` when the catalog database cannot be queried.
    """
    healthy = await database_reachable(db)
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED,
        timestamp=datetime.utcnow(),
        version="1.0.0"
    )

    logger.debug(
        "Health check requested",
        extra={"status": response_data.status.value}
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
