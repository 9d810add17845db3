"""
Convenience launcher — starts the Drift engine and (optionally) a sensor
agent driven by a synthetic page.

Usage:
    python start.py                           # engine only
    python start.py --sensor                  # engine + focused synthetic page
    python start.py --sensor --scenario distracted
"""

from __future__ import annotations

import argparse
import subprocess
import sys
import time

from drift.config import config


def start_engine() -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-m", "drift.main"],
        stdout=sys.stdout,
        stderr=sys.stderr,
    )


def start_sensor_agent(scenario: str) -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-m", "drift.telemetry.sensor_agent", "--scenario", scenario],
        stdout=sys.stdout,
        stderr=sys.stderr,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Start the Drift focus engine")
    parser.add_argument("--sensor", action="store_true", help="Also start a synthetic sensor agent")
    parser.add_argument("--scenario", default="focused", help="focused | distracted")
    args = parser.parse_args()

    print("Starting Drift engine…")
    procs = [start_engine()]

    if args.sensor:
        time.sleep(1.5)  # give engine a moment to bind
        print(f"Starting sensor agent ({args.scenario})…")
        procs.append(start_sensor_agent(args.scenario))

    print(f"\nEngine → http://{config.api_host}:{config.api_port}")
    print(f"Analysis every {config.tick_seconds:.0f}s, scorer: {config.scorer}")
    print("Press Ctrl+C to stop.\n")

    try:
        procs[0].wait()
    except KeyboardInterrupt:
        print("\nShutting down…")
        for p in procs:
            p.terminate()
        for p in procs:
            p.wait()


if __name__ == "__main__":
    main()
