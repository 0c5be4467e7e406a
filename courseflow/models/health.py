"""Service health records."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel


class ServiceStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    ERROR = "error"


class AggregateStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class ServiceHealth(BaseModel):
    """Latest health check result for one registered service."""

    service_name: str
    status: ServiceStatus
    last_check: datetime
    response_time_ms: Optional[float] = None
    error: Optional[str] = None


class HealthReport(BaseModel):
    timestamp: datetime
    overall_status: AggregateStatus
    services: Dict[str, ServiceHealth] = {}
