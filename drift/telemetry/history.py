"""
Focus History — append-only, bounded log of scored ticks kept under the
``focusHistory`` key, where the dashboard and reports read it.

Entries are stored in camelCase with epoch-millisecond timestamps, the
shape the presentation layer already consumes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..storage import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "focusHistory"


@dataclass
class HistoryEntry:
    distraction_score: float
    scroll_velocity: float = 0.0
    is_hovering_top: bool = False
    tab_switch_count: int = 0
    avg_typing_interval: float = 0.0
    backspace_count: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def focus_score(self) -> float:
        return 1.0 - self.distraction_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": int(self.timestamp * 1000),
            "distractionScore": self.distraction_score,
            "scrollVelocity": self.scroll_velocity,
            "isHoveringTop": self.is_hovering_top,
            "tabSwitchCount": self.tab_switch_count,
            "avgTypingInterval": self.avg_typing_interval,
            "backspaceCount": self.backspace_count,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            distraction_score=float(d.get("distractionScore") or 0.0),
            scroll_velocity=float(d.get("scrollVelocity") or 0.0),
            is_hovering_top=bool(d.get("isHoveringTop", False)),
            tab_switch_count=int(d.get("tabSwitchCount") or 0),
            avg_typing_interval=float(d.get("avgTypingInterval") or 0.0),
            backspace_count=int(d.get("backspaceCount") or 0),
            timestamp=float(d.get("timestamp") or 0.0) / 1000.0,
        )


def trim(history: List[Any], capacity: int) -> List[Any]:
    """Keep the newest *capacity* items, in their original order."""
    if capacity <= 0:
        return []
    return history[-capacity:]


class HistoryStore:

    def __init__(self, store: KeyValueStore, capacity: int = 1000):
        self._store = store
        self.capacity = capacity

    async def append(self, entry: HistoryEntry) -> int:
        """Append and trim; returns the stored length."""
        history = await self._raw()
        history.append(entry.to_dict())
        history = trim(history, self.capacity)
        await self._store.set({HISTORY_KEY: history})
        logger.debug("Focus history saved (%d entries)", len(history))
        return len(history)

    async def entries(self, limit: int | None = None) -> List[HistoryEntry]:
        history = await self._raw()
        if limit is not None:
            history = trim(history, limit)
        result = []
        for d in history:
            try:
                result.append(HistoryEntry.from_dict(d))
            except (AttributeError, TypeError, ValueError):
                logger.warning("Skipping malformed history entry: %r", d)
        return result

    async def clear(self) -> None:
        await self._store.set({HISTORY_KEY: []})

    async def _raw(self) -> List[Dict[str, Any]]:
        data = await self._store.get([HISTORY_KEY])
        history = data.get(HISTORY_KEY) or []
        return history if isinstance(history, list) else []
