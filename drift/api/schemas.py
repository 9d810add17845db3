"""
Pydantic schemas for the FastAPI local API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# ── Telemetry ──────────────────────────────────────────────────────────────

class PageEventIn(BaseModel):
    type: str = Field(..., description="SCROLL | MOUSE_MOVE | KEY_DOWN")
    timestamp: Optional[float] = Field(None, description="Page clock, epoch ms")
    data: Dict[str, Any] = Field(default_factory=dict)


class PageEventBatchIn(BaseModel):
    tab_id: str = Field("default", description="Page context the events came from")
    events: List[PageEventIn] = Field(default_factory=list)


class FlushRequest(BaseModel):
    tab_id: str = "default"
    forward: bool = Field(True, description="Hand the sample to the pipeline as a BEHAVIOR_UPDATE")


# ── Focus State ────────────────────────────────────────────────────────────

class FocusStateOut(BaseModel):
    focus_state: str
    distraction_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    focus_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    threshold: Optional[float] = None
    streak: int
    window_length: int
    window_size: int
    tab_switch_count: int
    browser_focused: bool
    model_ready: bool
    model_version: Optional[str] = None
    model_error: Optional[str] = None
    ticks: int
    last_tick_at: Optional[float] = None
    timestamp: float


class TickOut(BaseModel):
    status: str
    window_length: int
    distraction_score: Optional[float] = None
    focus_state: Optional[str] = None
    streak: Optional[int] = None
    intervene: bool = False
    error: Optional[str] = None


# ── History ────────────────────────────────────────────────────────────────

class HistoryEntryOut(BaseModel):
    timestamp: int
    distractionScore: float
    scrollVelocity: float
    isHoveringTop: bool
    tabSwitchCount: int
    avgTypingInterval: float
    backspaceCount: int


class HistorySummaryOut(BaseModel):
    daily_average: int = Field(..., ge=0, le=100)
    average_focus: int = Field(..., ge=0, le=100)
    current_status: str
    sample_count: int
    streak: int


class WeeklyOut(BaseModel):
    labels: List[str]
    data: List[int]


class InsightsOut(BaseModel):
    sweet_spot_minutes: int
    peak_window: Optional[List[int]] = None
    peak_window_label: str
