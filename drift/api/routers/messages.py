"""
/messages — the cross-context protocol endpoint. Page contexts post one
message at a time and get the protocol response back.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

router = APIRouter(prefix="/messages", tags=["messages"])


def _get_pipeline(request: Request):
    return request.app.state.pipeline


@router.post("")
async def post_message(message: Dict[str, Any], pipeline=Depends(_get_pipeline)):
    """Dispatch a BEHAVIOR_UPDATE, TAB_ACTIVATED, WINDOW_FOCUS, CHECK_STATUS, LOAD_MODEL or DEMO_TRIGGER."""
    try:
        return await pipeline.handle_message(message)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=f"Unrecognised message {message.get('type')!r}: {e.error_count()} error(s)",
        )
