"""Health check route.

Verifies database connectivity; needs no session cookie.
"""

from fastapi import APIRouter, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from terrabuild.db.connection import get_session

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check():
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except (SQLAlchemyError, OSError) as e:
        return {"status": "error", "database": "disconnected", "detail": str(e)}
