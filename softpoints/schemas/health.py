from typing import Literal

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    """로드밸런서/Lambda 헬스 체크 응답"""

    status: Literal["healthy", "degraded"] = "healthy"
    database: Literal["connected", "unavailable"] = "connected"
    environment: str
    system_operational: bool = True
