"""
/state — current focus state, a manual tick, and a WebSocket stream that
also pushes TRIGGER_INTERVENTION messages as they fire.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect

from ...api.schemas import FocusStateOut, TickOut

router = APIRouter(prefix="/state", tags=["state"])

STREAM_INTERVAL_S = 2.0


def _get_pipeline(request: Request):
    return request.app.state.pipeline


@router.get("", response_model=FocusStateOut)
def get_state(pipeline=Depends(_get_pipeline)):
    """Return the latest score, focus state, streak and engine status."""
    return FocusStateOut(**pipeline.current_state())


@router.post("/tick", response_model=TickOut)
async def run_tick(pipeline=Depends(_get_pipeline)):
    """Run one analysis tick now, outside the alarm cadence."""
    result = await pipeline.tick()
    d = result.decision
    return TickOut(
        status=result.status,
        window_length=result.window_length,
        distraction_score=d.score if d else None,
        focus_state=d.state.value if d else None,
        streak=d.streak if d else None,
        intervene=d.intervene if d else False,
        error=result.error,
    )


@router.websocket("/ws")
async def state_websocket(websocket: WebSocket):
    """
    WebSocket stream — pushes the focus state every 2 seconds and every
    intervention the moment it fires. The dashboard subscribes to this.
    """
    pipeline = websocket.app.state.pipeline
    notifier = websocket.app.state.notifier
    queue: asyncio.Queue = asyncio.Queue()
    unsubscribe = notifier.subscribe(queue.put_nowait)

    await websocket.accept()
    try:
        while True:
            try:
                intervention = await asyncio.wait_for(queue.get(), STREAM_INTERVAL_S)
            except asyncio.TimeoutError:
                await websocket.send_json({"type": "STATE", "state": pipeline.current_state()})
            else:
                await websocket.send_json(intervention)
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
