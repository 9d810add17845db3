"""
Browser page events — routes raw events posted by a page context into that
tab's BehaviorSensor.

Expected payload shape:
{
    "type": "SCROLL",
    "timestamp": 1700000000123,        # page clock, ms; optional
    "data": { ...event-specific fields... }
}
"""

from __future__ import annotations

import time
from typing import Any, Dict

from ..sensor import BehaviorSensor

# Mapping from page event names → sensor handler names
_EVENT_MAP: Dict[str, str] = {
    "SCROLL": "scroll",
    "PAGE_SCROLL": "scroll",
    "MOUSE_MOVE": "mouse",
    "KEY_DOWN": "key",
    "KEYSTROKE": "key",
}


def _float(data: Dict[str, Any], key: str) -> float:
    try:
        return float(data.get(key, 0.0))
    except (TypeError, ValueError):
        return 0.0


def apply_page_event(sensor: BehaviorSensor, payload: Dict[str, Any]) -> bool:
    """
    Feed one raw page event into *sensor*.
    Returns False if the event type is unknown (nothing is recorded).
    """
    kind = _EVENT_MAP.get(payload.get("type", ""))
    if not kind:
        return False

    data = payload.get("data") or {}
    try:
        t_ms = float(payload.get("timestamp", time.time() * 1000))
    except (TypeError, ValueError):
        t_ms = time.time() * 1000

    if kind == "scroll":
        sensor.on_scroll(_float(data, "scrollY"), t_ms)
    elif kind == "mouse":
        sensor.on_mouse_move(_float(data, "clientX"), _float(data, "clientY"), t_ms)
    elif kind == "key":
        # The key name is read once for the delete check and never stored
        sensor.on_key(str(data.get("key", "")), t_ms)
    return True
