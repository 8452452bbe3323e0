"""Liveness and readiness probes."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.config import settings
from zvonok.core.logging import db_logger
from zvonok.db.database import get_db

router = APIRouter()


@router.get('/healthz')
def healthz():
    return {"status": "ok", "service": settings.APP_NAME}


@router.get('/readyz')
async def readyz(db: AsyncSession = Depends(get_db)):
    # Permission checks fail closed without the store, so readiness tracks it
    try:
        await db.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        db_logger.error('readiness probe: database unreachable', error=e)
        raise HTTPException(status_code=503, detail='Database unavailable')
    return {"status": "ready", "checks": {"database": "ok"}}
