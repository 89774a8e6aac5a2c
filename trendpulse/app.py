"""TrendPulse FastAPI application."""

import secrets
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from trendpulse.core.db import get_db, ping_db
from trendpulse.core.logging import get_logger, setup_logging
from trendpulse.core.repositories import (
    get_hot_content,
    insert_content_item,
    insert_metric_snapshot,
    list_trends,
    update_trend_status,
)
from trendpulse.core.schemas import ContentItemIn, MetricSnapshotIn, TrendOut, TrendStatusUpdate
from trendpulse.core.settings import settings

setup_logging("trendpulse-api")
logger = get_logger(__name__)

app = FastAPI(title="TrendPulse", version="0.1.0", description="Trend and heat detection API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Credentials are only demanded when auth is enabled
security = HTTPBasic(auto_error=False)


class PassResponse(BaseModel):
    """Response model for a manually triggered pass."""
    status: str
    message: str
    result: Dict[str, Any]


class ContentCreatedResponse(BaseModel):
    id: str
    created: bool


class SnapshotCreatedResponse(BaseModel):
    id: int
    content_id: str


def get_current_username(credentials: Optional[HTTPBasicCredentials] = Depends(security)):
    """Verify basic auth credentials if auth is enabled."""
    if not settings.api_auth_enabled:
        return None

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Basic"},
        )

    is_correct_username = secrets.compare_digest(credentials.username, settings.api_username)
    is_correct_password = secrets.compare_digest(credentials.password, settings.api_password)

    if not (is_correct_username and is_correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


def check_manual_run_enabled():
    """Reject pass triggers when manual runs are disabled."""
    if not settings.allow_manual_run:
        raise HTTPException(
            status_code=403,
            detail="Manual runs are disabled. Set ALLOW_MANUAL_RUN=true to enable."
        )
    return True


def _pass_response(name: str, result: Dict[str, Any]) -> PassResponse:
    if result.get('fatal'):
        raise HTTPException(status_code=500, detail=f"{name} failed: {'; '.join(result.get('errors', []))}")

    errors = result.get('errors', [])
    return PassResponse(
        status="partial" if errors else "success",
        message=f"{name} completed with {len(errors)} error(s)",
        result=result,
    )


@app.get("/healthz")
async def health_check():
    """Health check endpoint."""
    try:
        await ping_db()
        database = "ok"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        database = "unavailable"
    return {"status": "ok", "service": "trendpulse", "database": database}


@app.get("/")
async def root():
    """Root endpoint."""
    manual = settings.allow_manual_run
    return {
        "service": settings.app_name,
        "version": "0.1.0",
        "auth_enabled": settings.api_auth_enabled,
        "endpoints": {
            "health": "/healthz",
            "heat_run": "/heat/run (POST)" if manual else "/heat/run (disabled)",
            "embeddings_run": "/embeddings/run (POST)" if manual else "/embeddings/run (disabled)",
            "trends_run": "/trends/run (POST)" if manual else "/trends/run (disabled)",
            "content": "/content (POST)",
            "hot_content": "/content/hot",
            "trends": "/trends",
        }
    }


@app.post("/heat/run", response_model=PassResponse)
async def run_heat_endpoint(
    _: bool = Depends(check_manual_run_enabled),
    username: Optional[str] = Depends(get_current_username)
):
    """Run one heat scoring pass."""
    from trendpulse.trends.pipeline import run_heat_scoring

    logger.info("Heat scoring triggered via API", extra={"user": username, "endpoint": "/heat/run"})
    result = await run_heat_scoring()
    return _pass_response("Heat scoring", result.to_dict())


@app.post("/embeddings/run", response_model=PassResponse)
async def run_embeddings_endpoint(
    _: bool = Depends(check_manual_run_enabled),
    username: Optional[str] = Depends(get_current_username)
):
    """Run one embedding pass."""
    from trendpulse.trends.pipeline import run_embedding_pass

    logger.info("Embedding pass triggered via API", extra={"user": username, "endpoint": "/embeddings/run"})
    result = await run_embedding_pass()
    return _pass_response("Embedding pass", result.to_dict())


@app.post("/trends/run", response_model=PassResponse)
async def run_trends_endpoint(
    _: bool = Depends(check_manual_run_enabled),
    username: Optional[str] = Depends(get_current_username)
):
    """Run one trend detection pass."""
    from trendpulse.trends.pipeline import run_trend_detection

    logger.info("Trend detection triggered via API", extra={"user": username, "endpoint": "/trends/run"})
    result = await run_trend_detection()
    return _pass_response("Trend detection", result.to_dict())


@app.post("/content", response_model=ContentCreatedResponse, status_code=201)
async def create_content(
    item: ContentItemIn,
    session: AsyncSession = Depends(get_db),
    username: Optional[str] = Depends(get_current_username)
):
    """Ingest a content item; an already known id is left untouched."""
    created, row = await insert_content_item(session, item)
    return ContentCreatedResponse(id=row.id, created=created)


@app.post("/content/{content_id}/metrics", response_model=SnapshotCreatedResponse, status_code=201)
async def create_snapshot(
    content_id: str,
    snapshot: MetricSnapshotIn,
    session: AsyncSession = Depends(get_db),
    username: Optional[str] = Depends(get_current_username)
):
    """Append a metric snapshot to an existing content item."""
    try:
        row = await insert_metric_snapshot(session, content_id, snapshot)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return SnapshotCreatedResponse(id=row.id, content_id=content_id)


@app.get("/content/hot")
async def hot_content(
    hours: float = 48,
    limit: int = 50,
    session: AsyncSession = Depends(get_db)
) -> List[Dict[str, Any]]:
    """Recently published items with their latest heat, hottest first."""
    return await get_hot_content(session, hours=hours, limit=limit)


@app.get("/trends", response_model=List[TrendOut])
async def get_trends(limit: int = 30, session: AsyncSession = Depends(get_db)):
    """Most recently detected trends."""
    rows = await list_trends(session, limit=limit)
    return [
        TrendOut(
            id=row.id,
            topic=row.topic,
            trend_score=row.trend_score,
            sources=row.sources or [],
            supporting_items=row.supporting_items or [],
            status=row.status,
            detected_at=row.detected_at,
        )
        for row in rows
    ]


@app.post("/trends/{trend_id}/status")
async def set_trend_status(
    trend_id: int,
    update: TrendStatusUpdate,
    session: AsyncSession = Depends(get_db),
    username: Optional[str] = Depends(get_current_username)
):
    """Mark a trend as used or ignored."""
    if not await update_trend_status(session, trend_id, update.status):
        raise HTTPException(status_code=404, detail=f"Trend not found: {trend_id}")
    return {"id": trend_id, "status": update.status}


if __name__ == "__main__":
    uvicorn.run(
        "trendpulse.app:app",
        host=settings.service_host,
        port=settings.service_port or 8000,
        reload=settings.debug,
        log_level="info",
    )
