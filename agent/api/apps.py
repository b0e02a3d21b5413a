"""
Read-only HTTP views of the agent.

- GET /stats: one telemetry sample
- GET /apps: installed apps with derived ids
- GET /apps/{owner}/{repo}: one app

All endpoints require the master key in the X-Master-Key header.
"""
import hmac
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from agent.errors import NotFoundError
from agent.models import TelemetrySample

logger = logging.getLogger(__name__)

router = APIRouter(tags=["apps"])


def require_master_key(request: Request, x_master_key: Optional[str] = Header(default=None)) -> None:
    expected = request.app.state.config.master_key.encode("utf-8")
    if x_master_key is None or not hmac.compare_digest(x_master_key.encode("utf-8"), expected):
        raise HTTPException(status_code=401, detail="Invalid master key")


@router.get("/stats", response_model=TelemetrySample, dependencies=[Depends(require_master_key)])
async def get_stats(request: Request):
    return await run_in_threadpool(request.app.state.sampler.sample)


@router.get("/apps", dependencies=[Depends(require_master_key)])
def list_apps(request: Request) -> List[Dict[str, Any]]:
    return request.app.state.lifecycle.list_apps()


@router.get("/apps/{app_id:path}", dependencies=[Depends(require_master_key)])
def get_app(app_id: str, request: Request) -> Dict[str, Any]:
    try:
        return request.app.state.lifecycle.get_app(app_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
