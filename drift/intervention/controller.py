"""
Intervention Controller — turns a distraction score into a focus state,
keeps the focus streak, logs history and fires break interventions.

    score <  threshold  → FOCUSED,    streak += 1
    score >= threshold  → DISTRACTED, streak  = 0, intervention fired

The threshold comes from the user's sensitivity setting, read on every
score so a change applies from the next tick on.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..actions.notifications import Notifier
from ..inference.features import BehaviorSample
from ..settings import current_threshold
from ..storage import KeyValueStore
from ..telemetry.history import HistoryEntry, HistoryStore

logger = logging.getLogger(__name__)

STREAK_KEY = "focusMinutes"


class FocusState(str, Enum):
    UNKNOWN = "unknown"          # nothing scored yet
    FOCUSED = "focused"
    DISTRACTED = "distracted"


@dataclass
class Decision:
    score: float
    threshold: float
    state: FocusState
    streak: int
    streak_broken: bool = False
    intervene: bool = False
    timestamp: float = 0.0


class InterventionController:

    def __init__(self, store: KeyValueStore, history: HistoryStore, notifier: Notifier):
        self._store = store
        self._history = history
        self._notifier = notifier
        self.state = FocusState.UNKNOWN
        self.streak = 0
        self.last_decision: Optional[Decision] = None

    async def restore(self) -> None:
        saved = await self._store.get([STREAK_KEY])
        try:
            self.streak = max(int(saved.get(STREAK_KEY, 0)), 0)
        except (TypeError, ValueError):
            self.streak = 0

    def decide(self, score: float, threshold: float) -> Decision:
        """Advance the state machine. Synchronous: no await between read and write."""
        score = max(0.0, min(float(score), 1.0))
        if score < threshold:
            self.streak += 1
            self.state = FocusState.FOCUSED
            decision = Decision(score, threshold, self.state, self.streak)
        else:
            broken = self.streak > 0
            if broken:
                logger.info("Focus streak broken after %d tick(s)", self.streak)
            self.streak = 0
            self.state = FocusState.DISTRACTED
            decision = Decision(score, threshold, self.state, 0,
                                streak_broken=broken, intervene=True)
        decision.timestamp = time.time()
        self.last_decision = decision
        return decision

    async def on_score(
        self,
        score: float,
        sample: BehaviorSample,
        tab_switch_count: int,
    ) -> Decision:
        """
        Full tick outcome: decide, fire the intervention if due, then persist
        the history entry and the streak. A StorageError propagates after
        the in-memory state and the intervention have been applied.
        """
        threshold = await current_threshold(self._store)
        decision = self.decide(score, threshold)
        if decision.intervene:
            logger.warning("High distraction (%.2f >= %.2f), triggering intervention",
                           decision.score, threshold)
            self._notifier.trigger(decision.score)
        else:
            logger.info("User is focused (%.2f < %.2f), streak %d",
                        decision.score, threshold, decision.streak)

        await self._history.append(HistoryEntry(
            distraction_score=decision.score,
            scroll_velocity=sample.scroll_velocity_avg,
            is_hovering_top=sample.is_hovering_top,
            tab_switch_count=tab_switch_count,
            avg_typing_interval=sample.avg_typing_interval,
            backspace_count=sample.backspace_count,
            timestamp=decision.timestamp,
        ))
        await self._store.set({STREAK_KEY: self.streak})
        return decision

    async def reset(self) -> None:
        """Forget the streak and the history (the dashboard's "clear data")."""
        self.streak = 0
        self.state = FocusState.UNKNOWN
        self.last_decision = None
        await self._history.clear()
        await self._store.set({STREAK_KEY: 0})
