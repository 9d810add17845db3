"""
Channels — one-way message lanes between isolated execution contexts.

Nothing crosses a channel except JSON text, so neither side can hold a
reference into the other's memory. A channel only accepts messages while
its receiving side is attached; sending into a detached channel raises
TransportUnavailable.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, Optional

from ..errors import TransportUnavailable

_CLOSED = object()


class Channel:

    def __init__(self, name: str):
        self.name = name
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    def attach(self) -> None:
        """Called by the receiving context when it starts listening."""
        self._queue = asyncio.Queue()
        self._attached = True

    def detach(self) -> None:
        """Called by the receiving context on shutdown; wakes a pending receive()."""
        if self._attached:
            self._attached = False
            self._queue.put_nowait(_CLOSED)

    def send(self, message: Dict[str, Any]) -> None:
        if not self._attached:
            raise TransportUnavailable(f"{self.name}: receiving context is not attached")
        self._queue.put_nowait(json.dumps(message))

    async def receive(self) -> Optional[Dict[str, Any]]:
        """Next message, or None once the channel has been detached."""
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return json.loads(item)


class Link:
    """The pair of channels joining the pipeline to the scoring engine."""

    def __init__(self):
        self.to_engine = Channel("pipeline→engine")
        self.from_engine = Channel("engine→pipeline")
