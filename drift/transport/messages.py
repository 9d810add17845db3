"""
Cross-context message protocol — pydantic models for every message that
crosses between page sensors, the pipeline and the scoring engine.

Every message is a JSON object with a ``type`` discriminator. Requests may
carry a ``requestId``; the matching response echoes it.
"""

from __future__ import annotations

import math
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from ..inference.features import BehaviorSample

BEHAVIOR_UPDATE = "BEHAVIOR_UPDATE"
LOAD_MODEL = "LOAD_MODEL"
PREDICT = "PREDICT"
MODEL_READY = "MODEL_READY"
TRIGGER_INTERVENTION = "TRIGGER_INTERVENTION"
CHECK_STATUS = "CHECK_STATUS"
TAB_ACTIVATED = "TAB_ACTIVATED"
WINDOW_FOCUS = "WINDOW_FOCUS"
DEMO_TRIGGER = "DEMO_TRIGGER"


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    request_id: Optional[int] = Field(default=None, alias="requestId")

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ── Sensor → pipeline ──────────────────────────────────────────────────────

class BehaviorSampleIn(BaseModel):
    """Wire form of a BehaviorSample. Malformed numbers degrade to 0."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    scroll_velocity_avg: float = Field(default=0.0, alias="scrollVelocityAvg")
    scroll_velocity: Optional[float] = Field(default=None, alias="scrollVelocity")
    is_scroll_erratic: bool = Field(default=False, alias="isScrollErratic")
    mouse_entropy: Optional[float] = Field(default=None, alias="mouseEntropy")
    is_hovering_top: bool = Field(default=False, alias="isHoveringTop")
    avg_typing_interval: float = Field(default=0.0, alias="avgTypingInterval")
    backspace_count: int = Field(default=0, alias="backspaceCount")
    tab_switch_count: int = Field(default=0, alias="tabSwitchCount")
    timestamp: Optional[float] = None      # epoch ms

    @field_validator("scroll_velocity_avg", "avg_typing_interval", mode="before")
    @classmethod
    def _non_negative(cls, v: Any) -> float:
        return _non_negative_float(v)

    @field_validator("backspace_count", "tab_switch_count", mode="before")
    @classmethod
    def _count(cls, v: Any) -> int:
        return int(_non_negative_float(v))

    @field_validator("scroll_velocity", "mouse_entropy", "timestamp", mode="before")
    @classmethod
    def _optional(cls, v: Any) -> Optional[float]:
        if v is None:
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    def to_sample(self) -> BehaviorSample:
        velocity = self.scroll_velocity_avg
        if not velocity and self.scroll_velocity is not None:
            velocity = _non_negative_float(self.scroll_velocity)
        sample = BehaviorSample(
            scroll_velocity_avg=velocity,
            is_scroll_erratic=self.is_scroll_erratic,
            mouse_entropy=self.mouse_entropy,
            is_hovering_top=self.is_hovering_top,
            avg_typing_interval=self.avg_typing_interval,
            backspace_count=self.backspace_count,
            tab_switch_count=self.tab_switch_count,
        )
        if self.timestamp:
            sample.timestamp = self.timestamp / 1000.0
        return sample


def _non_negative_float(v: Any) -> float:
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(f) or f < 0:
        return 0.0
    return f


class BehaviorUpdate(_Message):
    type: Literal["BEHAVIOR_UPDATE"] = BEHAVIOR_UPDATE
    payload: BehaviorSampleIn = Field(default_factory=BehaviorSampleIn)


class TabActivated(_Message):
    type: Literal["TAB_ACTIVATED"] = TAB_ACTIVATED
    tab_id: int = Field(alias="tabId")


class WindowFocus(_Message):
    type: Literal["WINDOW_FOCUS"] = WINDOW_FOCUS
    focused: bool = True


class DemoTrigger(_Message):
    type: Literal["DEMO_TRIGGER"] = DEMO_TRIGGER


# ── Pipeline ↔ scoring engine ──────────────────────────────────────────────

class LoadModel(_Message):
    type: Literal["LOAD_MODEL"] = LOAD_MODEL


class Predict(_Message):
    type: Literal["PREDICT"] = PREDICT
    data: List[List[float]]


class CheckStatus(_Message):
    type: Literal["CHECK_STATUS"] = CHECK_STATUS


class ModelReady(_Message):
    type: Literal["MODEL_READY"] = MODEL_READY
    status: Literal["success", "error"]
    version: Optional[str] = None
    error: Optional[str] = None


class TriggerIntervention(_Message):
    type: Literal["TRIGGER_INTERVENTION"] = TRIGGER_INTERVENTION
    score: float
    title: Optional[str] = None
    message: Optional[str] = None
    break_url: Optional[str] = Field(default=None, alias="breakUrl")


Message = Annotated[
    Union[
        BehaviorUpdate,
        TabActivated,
        WindowFocus,
        DemoTrigger,
        LoadModel,
        Predict,
        CheckStatus,
        ModelReady,
        TriggerIntervention,
    ],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter = TypeAdapter(Message)


def parse_message(data: Dict[str, Any]):
    """Validate a raw dict into the matching message model (pydantic ValidationError on failure)."""
    return _MESSAGE_ADAPTER.validate_python(data)


# ── Responses ──────────────────────────────────────────────────────────────

def ok(**fields: Any) -> Dict[str, Any]:
    return {"status": "success", **fields}


def error(message: str) -> Dict[str, Any]:
    return {"status": "error", "error": message}
