"""
Focus analytics — summaries the popup and dashboard show, computed from the
focus history. Everything here works on focus scores (1 − distraction).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from .history import HistoryEntry

FLOW_STATE = "Flow State"
NEUTRAL = "Neutral"
DISTRACTED = "Distracted"

STATUS_WINDOW = 5                # most recent points behind current_status()
FLOW_THRESHOLD = 0.7
DISTRACTED_THRESHOLD = 0.4

HIGH_FOCUS_THRESHOLD = 0.6       # sweet-spot runs
MIN_RUN_MINUTES = 1.0


@dataclass
class FocusPoint:
    timestamp: float             # epoch seconds
    score: float                 # focus, 0-1

    @property
    def day(self) -> date:
        return datetime.fromtimestamp(self.timestamp).date()

    @property
    def hour(self) -> int:
        return datetime.fromtimestamp(self.timestamp).hour


def to_focus_points(entries: Iterable[HistoryEntry]) -> List[FocusPoint]:
    return [FocusPoint(e.timestamp, 1.0 - e.distraction_score) for e in entries]


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def daily_average(points: List[FocusPoint], today: Optional[date] = None) -> int:
    """Today's mean focus as a rounded percentage; 0 when there is no data."""
    today = today or date.today()
    scores = [p.score for p in points if p.day == today]
    return round(_mean(scores) * 100)


def average_focus(points: List[FocusPoint]) -> int:
    """Mean focus over all points as a rounded percentage."""
    return round(_mean([p.score for p in points]) * 100)


def recent_average(points: List[FocusPoint], n: int = STATUS_WINDOW) -> float:
    return _mean([p.score for p in points[-n:]])


def current_status(points: List[FocusPoint]) -> str:
    if not points:
        return NEUTRAL
    avg = recent_average(points)
    if avg >= FLOW_THRESHOLD:
        return FLOW_STATE
    if avg < DISTRACTED_THRESHOLD:
        return DISTRACTED
    return NEUTRAL


def last_7_days(points: List[FocusPoint], today: Optional[date] = None) -> Dict[str, List]:
    """Per-day labels (oldest first) and rounded mean focus percentages (0 = no data)."""
    today = today or date.today()
    by_day: Dict[date, List[float]] = {}
    for p in points:
        by_day.setdefault(p.day, []).append(p.score)

    labels: List[str] = []
    data: List[int] = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        labels.append(day.strftime("%a"))
        data.append(round(_mean(by_day.get(day, [])) * 100))
    return {"labels": labels, "data": data}


def sweet_spot_minutes(points: List[FocusPoint]) -> int:
    """
    Mean length (minutes) of uninterrupted high-focus runs; runs of a minute
    or less are ignored. 0 when no run qualifies.
    """
    durations: List[float] = []
    run_start: Optional[float] = None
    run_last: Optional[float] = None

    for p in sorted(points, key=lambda p: p.timestamp):
        if p.score >= HIGH_FOCUS_THRESHOLD:
            if run_start is None:
                run_start = p.timestamp
            run_last = p.timestamp
        elif run_start is not None and run_last is not None:
            durations.append((run_last - run_start) / 60.0)
            run_start = run_last = None
    if run_start is not None and run_last is not None:
        durations.append((run_last - run_start) / 60.0)

    qualifying = [d for d in durations if d > MIN_RUN_MINUTES]
    return round(_mean(qualifying))


def peak_window(points: List[FocusPoint]) -> Optional[Tuple[int, int]]:
    """
    Best consecutive two-hour window by hourly mean focus, as (start, end)
    hours. None when there is no data with positive focus.
    """
    hourly: Dict[int, List[float]] = {}
    for p in points:
        hourly.setdefault(p.hour, []).append(p.score)
    averages = [_mean(hourly.get(h, [])) for h in range(24)]

    best_start: Optional[int] = None
    best_score = 0.0
    for h in range(23):
        window = (averages[h] + averages[h + 1]) / 2
        if window > best_score:
            best_score = window
            best_start = h
    if best_start is None:
        return None
    return best_start, best_start + 2


def format_hour(h: int) -> str:
    period = "PM" if h % 24 >= 12 else "AM"
    return f"{h % 12 or 12} {period}"


def format_peak(window: Optional[Tuple[int, int]]) -> str:
    if window is None:
        return "-- - --"
    return f"{format_hour(window[0])} - {format_hour(window[1])}"
