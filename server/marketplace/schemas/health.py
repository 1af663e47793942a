"""Health ping schema."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class HealthResponse(BaseModel):
    """Liveness plus a database round trip, for load balancers and uptime checks."""

    status: HealthStatus = Field(..., description="healthy, or degraded when the database is unreachable")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Deployed version")
    database: str = Field(..., description="ok or unavailable")
    timestamp: datetime = Field(..., description="Server time (ISO 8601)")
