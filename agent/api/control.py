"""
Control WebSocket endpoint.

The operator connects here, sends the master key as the first frame and then
issues commands while receiving telemetry. Served on /ws and on the root path,
which older operator clients dial directly.
"""
import logging

from fastapi import APIRouter, WebSocket

from agent.session import ControlSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["control"])


@router.websocket("/ws")
@router.websocket("/")
async def control_socket(websocket: WebSocket):
    state = websocket.app.state
    session = ControlSession(
        websocket,
        config=state.config,
        lifecycle=state.lifecycle,
        sampler=state.sampler,
    )
    await session.run()
