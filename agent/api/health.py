"""
Agent Health API

Unauthenticated liveness endpoint used by scripts/check_agent.py and
service supervisors.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter(prefix="/health", tags=["health"])


class HealthSummary(BaseModel):
    """Liveness summary"""
    status: str  # 'healthy', 'insecure'
    apps: int
    timestamp: str
    insecure_master_key: bool


@router.get("", response_model=HealthSummary)
def get_health(request: Request):
    state = request.app.state
    insecure = state.config.is_insecure
    return {
        "status": "insecure" if insecure else "healthy",
        "apps": len(state.registry),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "insecure_master_key": insecure,
    }
