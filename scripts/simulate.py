"""
Session Simulator — drives a running Drift engine with synthetic page
activity so you can watch the whole loop work (window filling, scores,
streaks, interventions) without a browser.

Each step posts one flush-interval's worth of raw page events, flushes the
tab's sensor into a BEHAVIOR_UPDATE, optionally switches tabs, and then
forces an analysis tick instead of waiting for the alarm.

Usage:
    # Make sure the engine is running first:
    #   python start.py
    # Then in a separate terminal:
    python scripts/simulate.py                         # cycle focused → distracted
    python scripts/simulate.py --scenario distracted   # one scenario
    python scripts/simulate.py --loop                  # repeat forever
    python scripts/simulate.py --speed 4.0             # 4× faster
"""

from __future__ import annotations

import argparse
import json
import random
import sys
import time
import urllib.error
import urllib.request
from pathlib import Path

# Make sure the package root is on the path when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

from drift.config import config
from drift.telemetry.sources.synthetic import events_for

API = f"http://{config.api_host}:{config.api_port}"
TAB = "simulated-tab"


# ---------------------------------------------------------------------------
# Low-level HTTP helpers
# ---------------------------------------------------------------------------

def _request(path: str, body: dict | None = None, method: str = "GET") -> dict | None:
    try:
        data = json.dumps(body).encode() if body is not None else None
        req = urllib.request.Request(
            f"{API}{path}",
            data=data,
            headers={"Content-Type": "application/json"},
            method=method,
        )
        with urllib.request.urlopen(req, timeout=15) as r:
            return json.loads(r.read())
    except (urllib.error.URLError, OSError, ValueError) as e:
        print(f"  [!] Engine unreachable: {e}")
        return None


def _post(path: str, body: dict) -> dict | None:
    return _request(path, body, method="POST")


def _get(path: str) -> dict | None:
    return _request(path)


# ---------------------------------------------------------------------------
# One simulated flush interval
# ---------------------------------------------------------------------------

def run_step(scenario: str, seconds: float, rng: random.Random) -> dict | None:
    events = list(events_for(scenario, time.time() * 1000, seconds, seed=rng.random()))
    _post("/telemetry/events", {"tab_id": TAB, "events": events})
    _post("/telemetry/flush", {"tab_id": TAB})

    switches = rng.randint(3, 12) if scenario == "distracted" else rng.randint(0, 1)
    for _ in range(switches):
        _post("/messages", {"type": "TAB_ACTIVATED", "tabId": rng.randint(1, 30)})

    return _post("/state/tick", {})


def run_scenario(name: str, steps: int, speed: float, rng: random.Random) -> None:
    print(f"\n{'─' * 60}")
    print(f"  SCENARIO: {name.upper()}")
    print(f"{'─' * 60}")

    for i in range(steps):
        tick = run_step(name, config.sensor_flush_interval_s, rng)
        if tick is None:
            return
        score = tick.get("distraction_score")
        if score is None:
            print(f"  [{i + 1:2d}/{steps}] {tick['status']:<10} window {tick['window_length']}")
        else:
            bar = "█" * int(score * 20) + "░" * (20 - int(score * 20))
            flag = "  ⚠ break nudge" if tick.get("intervene") else ""
            print(
                f"  [{i + 1:2d}/{steps}] [{bar}] {int(score * 100):3d}%  "
                f"{tick['focus_state']:<10} streak {tick['streak']}{flag}"
            )
        time.sleep(1.0 / speed)


def main() -> None:
    parser = argparse.ArgumentParser(description="Drift session simulator")
    parser.add_argument(
        "--scenario",
        choices=["focused", "distracted", "cycle"],
        default="cycle",
        help="Which scenario to run (default: cycle through both)",
    )
    parser.add_argument("--steps", type=int, default=config.window_size + 5,
                        help="Ticks per scenario")
    parser.add_argument("--loop", action="store_true", help="Repeat indefinitely")
    parser.add_argument("--speed", type=float, default=1.0, help="Speed multiplier (default 1.0)")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args()

    health = _get("/health")
    if not health:
        print(f"[!] Cannot reach engine at {API}")
        print("    Start it first: python start.py")
        return
    print(f"[✓] Engine connected — Drift v{health.get('version', '?')} ({health.get('scorer')})")
    print(f"    Speed: {args.speed}×  |  Scenario: {args.scenario}")

    rng = random.Random(args.seed)
    sequence = ["focused", "distracted"] if args.scenario == "cycle" else [args.scenario]

    while True:
        for name in sequence:
            run_scenario(name, args.steps, args.speed, rng)
        if not args.loop:
            break
        print("\n[↺] Looping...\n")
        time.sleep(2.0)

    summary = _get("/history/summary")
    if summary:
        print(f"\n[✓] Simulation complete. Today: {summary['daily_average']}% focus, "
              f"status {summary['current_status']}, streak {summary['streak']}")


if __name__ == "__main__":
    main()
