import logging

from fastapi import APIRouter, Depends, HTTPException
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core import redis_client as redis_module
from backend.app.db.session import get_session


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, bool]:
    """Basic liveness probe."""
    return {"ok": True}


@router.get("/readiness")
async def readiness(session: AsyncSession = Depends(get_session)) -> dict[str, bool]:
    """Report ready only when the database and Redis both answer."""
    if redis_module.redis_client is None:
        raise HTTPException(status_code=503, detail="Redis unavailable")

    try:
        await session.execute(text("SELECT 1"))
    except DBAPIError as exc:
        logger.warning("Database check failed: %s", exc)
        raise HTTPException(status_code=503, detail="Database unavailable") from exc

    try:
        await redis_module.redis_client.ping()
    except RedisError as exc:
        logger.warning("Redis ping failed: %s", exc)
        raise HTTPException(status_code=503, detail="Redis unavailable") from exc

    return {"ready": True}
