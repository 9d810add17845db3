"""
Behavior Sensor — privacy-first, per-tab interaction sampling.

Raw scroll, pointer and keyboard events are folded into small accumulators;
flush() turns them into one BehaviorSample and starts a fresh interval.
No text is ever kept: a keystroke survives only as "was it a delete key".

All timestamps passed in are milliseconds (the page clock).
"""

from __future__ import annotations

import logging
import math
import time
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Tuple

from ..inference.features import BehaviorSample

logger = logging.getLogger(__name__)

SCROLL_HISTORY_LIMIT = 10          # scroll measurements kept per interval
ERRATIC_REVERSAL_RATIO = 0.5
ERRATIC_MIN_SAMPLES = 3

TOP_HOVER_THRESHOLD_PX = 50
MOUSE_THROTTLE_MS = 200
ENTROPY_MIN_RATIO = 1.0            # straight line
ENTROPY_MAX_RATIO = 5.0            # very tortuous path

MIN_TYPING_INTERVAL_MS = 10        # faster than this = paste / auto-repeat
MAX_TYPING_INTERVAL_MS = 5000      # slower than this = idle gap

DELETE_KEYS = frozenset({"Backspace", "Delete"})

MAX_TAB_SENSORS = 64               # server-held sensors for /telemetry


@dataclass
class ScrollMeasurement:
    velocity: float                # px / ms
    direction: str                 # "up" | "down" | "none"
    timestamp: float


class ScrollTracker:
    """
    Velocity is averaged over every measurement since the last reset;
    the erratic check looks at the most recent ``limit`` measurements only.
    """

    def __init__(self, limit: int = SCROLL_HISTORY_LIMIT):
        self._history: Deque[ScrollMeasurement] = deque(maxlen=limit)
        self._velocity_sum = 0.0
        self._count = 0
        self._last_y: Optional[float] = None
        self._last_t: Optional[float] = None

    def record(self, scroll_y: float, t_ms: float) -> None:
        if self._last_y is not None and self._last_t is not None:
            dt = t_ms - self._last_t
            if dt > 0:
                distance = scroll_y - self._last_y
                direction = "down" if distance > 0 else "up" if distance < 0 else "none"
                velocity = abs(distance) / dt
                self._history.append(ScrollMeasurement(velocity, direction, t_ms))
                self._velocity_sum += velocity
                self._count += 1
        self._last_y = scroll_y
        self._last_t = t_ms

    def metrics(self) -> Tuple[float, bool]:
        """(average velocity, is_erratic) over the current interval."""
        history = list(self._history)
        if not history:
            return 0.0, False
        avg = self._velocity_sum / self._count
        reversals = sum(
            1
            for prev, cur in zip(history, history[1:])
            if cur.direction != prev.direction
            and "none" not in (cur.direction, prev.direction)
        )
        erratic = (
            len(history) >= ERRATIC_MIN_SAMPLES
            and reversals / (len(history) - 1) > ERRATIC_REVERSAL_RATIO
        )
        return avg, erratic

    def reset(self) -> None:
        # Keep the last position so the next interval's first delta is real
        self._history.clear()
        self._velocity_sum = 0.0
        self._count = 0


class MouseTracker:
    """Keeps only the path endpoints and the running path length."""

    def __init__(self):
        self._first: Optional[Tuple[float, float]] = None
        self._last: Optional[Tuple[float, float]] = None
        self._path_length = 0.0
        self._point_count = 0
        self._last_hover_check: Optional[float] = None
        self.is_hovering_top = False

    def record(self, x: float, y: float, t_ms: float) -> None:
        point = (x, y)
        if self._first is None:
            self._first = point
        else:
            self._path_length += math.dist(self._last, point)
        self._last = point
        self._point_count += 1
        if self._last_hover_check is None or t_ms - self._last_hover_check > MOUSE_THROTTLE_MS:
            self.is_hovering_top = y < TOP_HOVER_THRESHOLD_PX
            self._last_hover_check = t_ms

    def entropy(self) -> float:
        """Path tortuosity rescaled from [1, 5] to [0, 1]; 0 with < 2 points."""
        if self._point_count < 2:
            return 0.0
        direct = math.dist(self._first, self._last)
        ratio = self._path_length / (direct + 1.0)
        scaled = (ratio - ENTROPY_MIN_RATIO) / (ENTROPY_MAX_RATIO - ENTROPY_MIN_RATIO)
        return max(0.0, min(scaled, 1.0))

    def reset(self) -> None:
        self._first = None
        self._last = None
        self._path_length = 0.0
        self._point_count = 0


class TypingTracker:

    def __init__(self):
        self._intervals: List[float] = []
        self._last_key_t: Optional[float] = None
        self.backspace_count = 0

    def record(self, is_delete: bool, t_ms: float) -> None:
        if self._last_key_t is not None:
            interval = t_ms - self._last_key_t
            if MIN_TYPING_INTERVAL_MS <= interval <= MAX_TYPING_INTERVAL_MS:
                self._intervals.append(interval)
        self._last_key_t = t_ms
        if is_delete:
            self.backspace_count += 1

    def average_interval(self) -> float:
        if not self._intervals:
            return 0.0
        return sum(self._intervals) / len(self._intervals)

    def reset(self) -> None:
        self._intervals.clear()
        self.backspace_count = 0


class BehaviorSensor:
    """
    Usage:
        sensor = BehaviorSensor()
        sensor.on_scroll(scroll_y=1200, t_ms=now_ms)
        sensor.on_mouse_move(x, y, t_ms)
        sensor.on_key("Backspace", t_ms)
        sample = sensor.flush()
    """

    def __init__(self):
        self.scroll = ScrollTracker()
        self.mouse = MouseTracker()
        self.typing = TypingTracker()
        self.samples_emitted = 0

    def on_scroll(self, scroll_y: float, t_ms: float) -> None:
        self.scroll.record(scroll_y, t_ms)

    def on_mouse_move(self, x: float, y: float, t_ms: float) -> None:
        self.mouse.record(x, y, t_ms)

    def on_key(self, key: str, t_ms: float) -> None:
        # Only the delete/non-delete bit of the key is retained
        self.typing.record(key in DELETE_KEYS, t_ms)

    def flush(self, now: Optional[float] = None) -> BehaviorSample:
        velocity, erratic = self.scroll.metrics()
        sample = BehaviorSample(
            scroll_velocity_avg=velocity,
            is_scroll_erratic=erratic,
            mouse_entropy=self.mouse.entropy(),
            is_hovering_top=self.mouse.is_hovering_top,
            avg_typing_interval=self.typing.average_interval(),
            backspace_count=self.typing.backspace_count,
            timestamp=now if now is not None else time.time(),
        )
        self.scroll.reset()
        self.mouse.reset()
        self.typing.reset()
        self.samples_emitted += 1
        return sample


class TabSensors:
    """
    Server-held sensors keyed by tab id. At most ``max_tabs`` are kept; the
    least recently used tab's sensor is dropped to make room for a new one.
    """

    def __init__(self, max_tabs: int = MAX_TAB_SENSORS):
        if max_tabs < 1:
            raise ValueError("max_tabs must be at least 1")
        self.max_tabs = max_tabs
        self._sensors: "OrderedDict[str, BehaviorSensor]" = OrderedDict()

    def get(self, tab_id: str) -> BehaviorSensor:
        sensor = self._sensors.get(tab_id)
        if sensor is None:
            sensor = BehaviorSensor()
            self._sensors[tab_id] = sensor
            while len(self._sensors) > self.max_tabs:
                evicted, _ = self._sensors.popitem(last=False)
                logger.debug("Dropped idle sensor for tab %s", evicted)
        else:
            self._sensors.move_to_end(tab_id)
        return sensor

    def __contains__(self, tab_id: object) -> bool:
        return tab_id in self._sensors

    def __len__(self) -> int:
        return len(self._sensors)
