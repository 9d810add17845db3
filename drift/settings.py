"""
User-tunable settings — persisted in the key-value store next to the
pipeline state, so the presentation layer can edit them directly.

The intervention pipeline calls threshold_for() with a fresh read on every
tick; there is no cached copy to invalidate.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict

from .storage import KeyValueStore

logger = logging.getLogger(__name__)


class Sensitivity(str, Enum):
    LOW = "low"
    BALANCED = "balanced"
    HIGH = "high"


# Distraction score at or above which an intervention fires
THRESHOLDS: Dict[Sensitivity, float] = {
    Sensitivity.LOW: 0.8,
    Sensitivity.BALANCED: 0.6,
    Sensitivity.HIGH: 0.4,
}

DEFAULTS: Dict[str, Any] = {
    "sensitivity": Sensitivity.BALANCED.value,
    "userName": "",
    "onboardingCompleted": False,
}


def parse_sensitivity(value: Any) -> Sensitivity:
    """Map a stored value to a Sensitivity; anything unrecognised is 'balanced'."""
    try:
        return Sensitivity(value)
    except ValueError:
        logger.warning("Unknown sensitivity %r, using balanced", value)
        return Sensitivity.BALANCED


def threshold_for(sensitivity: Any) -> float:
    return THRESHOLDS[parse_sensitivity(sensitivity)]


def _coerce(key: str, value: Any) -> Any:
    if key == "sensitivity":
        return Sensitivity(value).value        # raises ValueError on bad input
    if key == "onboardingCompleted":
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)
    return type(DEFAULTS[key])(value)


async def get_settings(store: KeyValueStore) -> Dict[str, Any]:
    """Return the current settings merged over DEFAULTS."""
    saved = await store.get(DEFAULTS.keys())
    current = dict(DEFAULTS)
    for k, v in saved.items():
        try:
            current[k] = _coerce(k, v)
        except (TypeError, ValueError):
            pass  # bad stored value, keep the default
    return current


async def update_settings(store: KeyValueStore, patch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply *patch* (unknown keys ignored), persist, return the full settings.
    Raises ValueError for an invalid sensitivity.
    """
    changes = {k: _coerce(k, v) for k, v in patch.items() if k in DEFAULTS}
    if changes:
        await store.set(changes)
        logger.info("Settings updated: %s", sorted(changes))
    return await get_settings(store)


async def current_threshold(store: KeyValueStore) -> float:
    saved = await store.get(["sensitivity"])
    return threshold_for(saved.get("sensitivity", DEFAULTS["sensitivity"]))
