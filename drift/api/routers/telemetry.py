"""
/telemetry — raw page events for pages that cannot run a sensor of their
own. Each tab gets a server-held BehaviorSensor (least recently used tabs
are dropped past a cap); a flush turns its accumulated events into one
BehaviorSample.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from ...api.schemas import FlushRequest, PageEventBatchIn
from ...telemetry.sources.browser import apply_page_event

router = APIRouter(prefix="/telemetry", tags=["telemetry"])


def _get_sensors(request: Request):
    return request.app.state.sensors


def _get_pipeline(request: Request):
    return request.app.state.pipeline


@router.post("/events", status_code=status.HTTP_202_ACCEPTED)
def ingest_events(batch: PageEventBatchIn, sensors=Depends(_get_sensors)):
    """Feed a batch of page events into the tab's sensor; unknown event types are skipped."""
    sensor = sensors.get(batch.tab_id)
    accepted = 0
    for event in batch.events:
        payload = {"type": event.type, "data": event.data}
        if event.timestamp is not None:
            payload["timestamp"] = event.timestamp
        if apply_page_event(sensor, payload):
            accepted += 1
    return {"accepted": accepted, "total": len(batch.events)}


@router.post("/flush")
def flush(req: FlushRequest, sensors=Depends(_get_sensors), pipeline=Depends(_get_pipeline)):
    """Summarize the tab's events since the last flush and (by default) hand them to the pipeline."""
    sensor = sensors.get(req.tab_id)
    sample = sensor.flush()
    if req.forward:
        pipeline.on_behavior_update(sample)
    return {"tab_id": req.tab_id, "forwarded": req.forward, "sample": sample.to_wire()}
