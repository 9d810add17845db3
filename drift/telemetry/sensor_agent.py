"""
Sensor Agent — runs a BehaviorSensor on a fixed flush interval and ships
each sample across the transport as BEHAVIOR_UPDATE.

Delivery is fire-and-forget: if the receiving context is unavailable the
sample is dropped and the next interval's sample supersedes it.

Run standalone (posts to a running engine):
    python -m drift.telemetry.sensor_agent --url http://127.0.0.1:8766
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..config import config
from ..errors import TransportUnavailable
from ..inference.features import BehaviorSample
from .sensor import BehaviorSensor

logger = logging.getLogger(__name__)

Sender = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class HttpSender:
    """Posts protocol messages to the engine's /messages endpoint."""

    def __init__(self, engine_url: str, timeout_s: float = 3.0):
        self.engine_url = engine_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.engine_url, timeout=timeout_s)

    async def __call__(self, message: Dict[str, Any]) -> Dict[str, Any]:
        try:
            r = await self._client.post("/messages", json=message)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportUnavailable(f"{self.engine_url}: {e}") from e
        return r.json()

    async def aclose(self) -> None:
        await self._client.aclose()


class SensorAgent:
    """
    Usage:
        agent = SensorAgent(sensor, sender)
        await agent.start()
        ...
        await agent.stop()
    """

    def __init__(
        self,
        sensor: BehaviorSensor,
        send: Sender,
        flush_interval_s: float = config.sensor_flush_interval_s,
        initial_delay_s: float = config.sensor_initial_delay_s,
    ):
        self.sensor = sensor
        self._send = send
        self.flush_interval_s = flush_interval_s
        self.initial_delay_s = initial_delay_s
        self._task: Optional[asyncio.Task] = None
        self.sent = 0
        self.dropped = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="drift-sensor-agent")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay_s)
        while True:
            await self.flush_and_send()
            await asyncio.sleep(self.flush_interval_s)

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------

    async def flush_and_send(self) -> BehaviorSample:
        sample = self.sensor.flush()
        message = {"type": "BEHAVIOR_UPDATE", "payload": sample.to_wire()}
        try:
            await self._send(message)
            self.sent += 1
        except TransportUnavailable as e:
            self.dropped += 1
            logger.debug("Behavior update dropped: %s", e)
        return sample


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def main() -> None:
    import argparse

    from .sources.synthetic import SyntheticPage

    parser = argparse.ArgumentParser(description="Drift sensor agent (synthetic page)")
    parser.add_argument("--url", default=f"http://{config.api_host}:{config.api_port}")
    parser.add_argument("--interval", type=float, default=config.sensor_flush_interval_s)
    parser.add_argument("--scenario", default="focused", help="focused | distracted")
    args = parser.parse_args()

    logging.basicConfig(level=config.log_level, format="%(asctime)s %(name)s %(message)s")

    async def _main() -> None:
        sensor = BehaviorSensor()
        sender = HttpSender(args.url)
        agent = SensorAgent(sensor, sender, flush_interval_s=args.interval, initial_delay_s=0)
        page = SyntheticPage(sensor, scenario=args.scenario)
        await agent.start()
        print(f"Sensor agent running (flushing every {args.interval}s → {args.url})")
        try:
            await page.run()
        finally:
            await agent.stop()
            await sender.aclose()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        print("Stopping…")


if __name__ == "__main__":
    main()
