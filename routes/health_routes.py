import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from config.database import Database
from schemas.common import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["health"]
)


@router.get("")
async def health():
    """Liveness probe: the process is up and serving requests"""
    return {"status": "ok", "timestamp": utcnow().isoformat()}


@router.get("/ready")
async def readiness():
    """Readiness probe: the database answers a ping"""
    try:
        await Database().ping()
    except (RuntimeError, PyMongoError) as e:
        logger.warning(f"Readiness check failed: {str(e)}")
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "down"})
    return {"status": "ready", "database": "up"}


@router.get("/metrics")
async def metrics(request: Request):
    return request.app.state.metrics.snapshot()
