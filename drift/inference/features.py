"""
Feature Normalizer — turns one BehaviorSample plus the tab-switch counter
into a fixed-order feature vector with every coordinate in [0, 1].
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

FEATURE_NAMES: Tuple[str, ...] = (
    "tab_count",
    "scroll_velocity",
    "mouse_entropy",
    "typing_speed",
    "error_rate",
)

# Normalisation caps: raw / cap, then clamped to 1.0
TAB_SWITCH_CAP = 20.0           # switches per tick
SCROLL_VELOCITY_CAP = 200.0
TYPING_INTERVAL_CAP = 1000.0    # ms between keystrokes
BACKSPACE_CAP = 20.0            # backspaces per tick

# Added to the scroll coordinate when scrolling reversed direction erratically
ERRATIC_SCROLL_BONUS = 0.5

# Mouse entropy stand-in when a sample carries none
HOVER_TOP_ENTROPY = 0.8
NO_HOVER_ENTROPY = 0.2


@dataclass
class BehaviorSample:
    """One sensor flush: summary metrics for a single sampling interval."""
    scroll_velocity_avg: float = 0.0
    is_scroll_erratic: bool = False
    mouse_entropy: float | None = None     # None = sensor did not measure it
    is_hovering_top: bool = False
    avg_typing_interval: float = 0.0       # ms
    backspace_count: int = 0
    tab_switch_count: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_wire(self) -> Dict[str, Any]:
        """camelCase dict used on the message protocol (timestamp in epoch ms)."""
        return {
            "scrollVelocityAvg": self.scroll_velocity_avg,
            "isScrollErratic": self.is_scroll_erratic,
            "mouseEntropy": self.mouse_entropy,
            "isHoveringTop": self.is_hovering_top,
            "avgTypingInterval": self.avg_typing_interval,
            "backspaceCount": self.backspace_count,
            "tabSwitchCount": self.tab_switch_count,
            "timestamp": int(self.timestamp * 1000),
        }


@dataclass(frozen=True)
class FeatureVector:
    tab_count: float = 0.0
    scroll_velocity: float = 0.0
    mouse_entropy: float = 0.0
    typing_speed: float = 0.0
    error_rate: float = 0.0

    def as_list(self) -> List[float]:
        return [self.tab_count, self.scroll_velocity, self.mouse_entropy,
                self.typing_speed, self.error_rate]

    @classmethod
    def from_list(cls, values: List[Any]) -> "FeatureVector":
        if len(values) != len(FEATURE_NAMES):
            raise ValueError(
                f"Feature vector needs {len(FEATURE_NAMES)} values, got {len(values)}"
            )
        return cls(*(_clamp01(_num(v)) for v in values))


def _num(value: Any) -> float:
    """Coerce to a finite, non-negative float; anything else is 0."""
    if isinstance(value, bool):
        return float(value)
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(v) or v < 0:
        return 0.0
    return v


def _clamp01(value: float) -> float:
    return max(0.0, min(value, 1.0))


def _scaled(value: Any, cap: float) -> float:
    return _clamp01(_num(value) / cap)


def mouse_entropy_of(sample: BehaviorSample) -> float:
    if sample.mouse_entropy is not None:
        return _clamp01(_num(sample.mouse_entropy))
    return HOVER_TOP_ENTROPY if sample.is_hovering_top else NO_HOVER_ENTROPY


def scroll_of(sample: BehaviorSample) -> float:
    scaled = _scaled(sample.scroll_velocity_avg, SCROLL_VELOCITY_CAP)
    if sample.is_scroll_erratic is True:
        scaled = _clamp01(scaled + ERRATIC_SCROLL_BONUS)
    return scaled


def normalize(sample: BehaviorSample, tab_switch_count: int) -> FeatureVector:
    """Deterministic, side-effect free; never raises for odd inputs."""
    return FeatureVector(
        tab_count=_scaled(tab_switch_count, TAB_SWITCH_CAP),
        scroll_velocity=scroll_of(sample),
        mouse_entropy=mouse_entropy_of(sample),
        typing_speed=_scaled(sample.avg_typing_interval, TYPING_INTERVAL_CAP),
        error_rate=_scaled(sample.backspace_count, BACKSPACE_CAP),
    )
