# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

The database is required; Redis and Qdrant are optional, so their absence
degrades the service instead of failing it.
"""

import logging
import time
from datetime import datetime
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.core.config import get_settings
from src.infrastructure.cache import RedisError, get_redis
from src.infrastructure.database import DatabaseError, get_database
from src.infrastructure.vectors import VectorStoreError, get_qdrant
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

router = APIRouter()

API_VERSION = "1.0.0"

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""

    status: str = Field(description="healthy, unhealthy or unavailable")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class ComponentsHealth(BaseModel):
    database: ComponentHealth
    redis: ComponentHealth
    qdrant: ComponentHealth


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(description="Overall health status")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    checked_at: datetime = Field(description="When health was checked")
    components: ComponentsHealth


async def _timed(check: Any) -> ComponentHealth:
    start = time.time()
    ok = await check()
    latency = round((time.time() - start) * 1000, 2)
    if ok:
        return ComponentHealth(status="healthy", latency_ms=latency)
    return ComponentHealth(status="unhealthy", latency_ms=latency)


async def check_database() -> ComponentHealth:
    try:
        database = get_database()
    except DatabaseError as e:
        return ComponentHealth(status="unhealthy", message=str(e))
    health = await _timed(database.check_connection)
    if health.status != "healthy":
        logger.error("Database health check failed")
    return health


async def check_redis() -> ComponentHealth:
    try:
        redis = get_redis()
    except RedisError as e:
        return ComponentHealth(status="unavailable", message=str(e))
    return await _timed(redis.ping)


async def check_qdrant() -> ComponentHealth:
    try:
        qdrant = get_qdrant()
    except VectorStoreError as e:
        return ComponentHealth(status="unavailable", message=str(e))
    return await _timed(qdrant.ping)


def overall_status(components: ComponentsHealth) -> str:
    """healthy when all pass, unhealthy when the database fails, else degraded."""
    if components.database.status != "healthy":
        return "unhealthy"
    if components.redis.status == "healthy" and components.qdrant.status == "healthy":
        return "healthy"
    return "degraded"


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check the API and its infrastructure components."""
    components = ComponentsHealth(
        database=await check_database(),
        redis=await check_redis(),
        qdrant=await check_qdrant(),
    )
    return HealthResponse(
        status=overall_status(components),
        version=API_VERSION,
        environment=get_settings().environment,
        uptime_seconds=int(time.time() - _server_start_time),
        checked_at=utc_now(),
        components=components,
    )
