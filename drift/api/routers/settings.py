"""
/settings — read and update user settings (sensitivity, name, onboarding).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from ...settings import DEFAULTS, THRESHOLDS, Sensitivity, get_settings, update_settings

router = APIRouter(prefix="/settings", tags=["settings"])


class SettingsPatch(BaseModel):
    sensitivity:         Optional[Sensitivity] = None
    userName:            Optional[str]         = None
    onboardingCompleted: Optional[bool]        = None


def _get_store(request: Request):
    return request.app.state.store


@router.get("")
async def read_settings(store=Depends(_get_store)):
    """Return current settings, their defaults and the threshold each sensitivity maps to."""
    current = await get_settings(store)
    return {
        "settings": current,
        "defaults": DEFAULTS,
        "thresholds": {s.value: t for s, t in THRESHOLDS.items()},
    }


@router.put("")
async def write_settings(patch: SettingsPatch, store=Depends(_get_store)):
    """Apply a partial update; takes effect from the next tick."""
    data = {k: v for k, v in patch.model_dump(mode="json").items() if v is not None}
    return {"settings": await update_settings(store, data)}
