"""
Synthetic page — generates plausible raw scroll / pointer / key events so
the pipeline can be exercised without a real browser.

Scenarios:
  focused     steady reading: slow one-way scrolling, calm pointer, even typing
  distracted  frantic skimming: fast back-and-forth scrolling, jittery pointer
              parked near the tab strip, hesitant typing with many deletes
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Dict, Iterator, Optional

from ..sensor import BehaviorSensor
from .browser import apply_page_event

SCENARIOS = ("focused", "distracted")


def events_for(scenario: str, start_ms: float, seconds: float, seed: Optional[int] = None) -> Iterator[Dict]:
    """Yield raw page events covering *seconds* of activity from *start_ms*."""
    if scenario not in SCENARIOS:
        raise ValueError(f"Unknown scenario: {scenario!r}")
    rng = random.Random(seed)
    distracted = scenario == "distracted"
    t = start_ms
    end = start_ms + seconds * 1000
    scroll_y = 0.0
    x, y = 400.0, 300.0

    while t < end:
        t += rng.uniform(80, 250)
        roll = rng.random()
        if roll < 0.35:
            if distracted:
                scroll_y = max(0.0, scroll_y + rng.choice((-1, 1)) * rng.uniform(300, 1500))
            else:
                scroll_y += rng.uniform(20, 120)
            yield {"type": "SCROLL", "timestamp": t, "data": {"scrollY": scroll_y}}
        elif roll < 0.75:
            if distracted:
                x += rng.uniform(-250, 250)
                y = rng.uniform(0, 60) if rng.random() < 0.6 else y + rng.uniform(-200, 200)
            else:
                x += rng.uniform(-15, 15)
                y += rng.uniform(-10, 10)
            yield {"type": "MOUSE_MOVE", "timestamp": t, "data": {"clientX": x, "clientY": y}}
        else:
            delete_rate = 0.35 if distracted else 0.05
            key = "Backspace" if rng.random() < delete_rate else "k"
            yield {"type": "KEY_DOWN", "timestamp": t, "data": {"key": key}}


class SyntheticPage:
    """Feeds generated events into a sensor in (compressed) real time."""

    def __init__(self, sensor: BehaviorSensor, scenario: str = "focused", speed: float = 1.0):
        self.sensor = sensor
        self.scenario = scenario
        self.speed = speed

    async def run(self, seconds: Optional[float] = None) -> None:
        started = time.monotonic()
        while seconds is None or time.monotonic() - started < seconds:
            now_ms = time.time() * 1000
            for event in events_for(self.scenario, now_ms, 1.0):
                apply_page_event(self.sensor, event)
            await asyncio.sleep(1.0 / self.speed)
