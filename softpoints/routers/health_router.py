import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.config import settings
from softpoints.database.session import get_db
from softpoints.schemas.health import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthCheckResponse:
    """DB 연결 확인 (실패해도 200 + degraded)"""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning(f"Health check database query failed: {e}")
        return HealthCheckResponse(
            status="degraded",
            database="unavailable",
            environment=settings.ENVIRONMENT,
            system_operational=False,
        )
    return HealthCheckResponse(environment=settings.ENVIRONMENT)
