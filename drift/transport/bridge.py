"""
Engine bridge — request/response over a Link.

EngineHost runs beside the ScoringEngine in its own context and answers
LOAD_MODEL / PREDICT / CHECK_STATUS, announcing load results with an
unsolicited MODEL_READY. EngineClient is the pipeline-side proxy: every
request gets a fresh requestId and a future, so responses can arrive in
any order and a response to an abandoned request is simply dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from pydantic import ValidationError

from ..errors import EngineLoadError, EngineNotReady, PredictError, TransportUnavailable
from ..inference.scoring import ScoringEngine
from . import messages as m
from .channel import Link

logger = logging.getLogger(__name__)

NOT_READY = "not_ready"


class EngineHost:
    """Engine-side message loop."""

    def __init__(self, engine: ScoringEngine, link: Link, autoload: bool = True):
        self.engine = engine
        self._link = link
        self._autoload = autoload
        self._serve_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

    async def start(self) -> None:
        self._link.to_engine.attach()
        self._serve_task = asyncio.create_task(self._serve())
        if self._autoload:
            self._begin_load()

    async def stop(self) -> None:
        self._link.to_engine.detach()
        tasks = list(self._tasks)
        if self._serve_task is not None:
            tasks.append(self._serve_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._serve_task = None

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _serve(self) -> None:
        while True:
            raw = await self._link.to_engine.receive()
            if raw is None:
                break
            self._spawn(self._handle(raw))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, raw: Dict[str, Any]) -> None:
        request_id = raw.get("requestId")
        try:
            msg = m.parse_message(raw)
        except ValidationError as e:
            self._reply(request_id, m.error(f"Malformed message: {e.error_count()} error(s)"))
            return

        if isinstance(msg, m.LoadModel):
            if self.engine.is_ready:
                self._reply(request_id, m.ok(version=self.engine.version))
            else:
                self._begin_load()
                self._reply(request_id, {"status": "initiated"})
        elif isinstance(msg, m.Predict):
            self._reply(request_id, await self._predict(msg.data))
        elif isinstance(msg, m.CheckStatus):
            self._reply(request_id, self.engine.status())
        else:
            self._reply(request_id, m.error(f"Unsupported message type: {msg.type}"))

    async def _predict(self, rows: List[List[float]]) -> Dict[str, Any]:
        try:
            score = await self.engine.predict(rows)
        except EngineNotReady:
            return {**m.error("Model not ready"), "code": NOT_READY}
        except ValueError as e:
            return m.error(str(e))
        except Exception as e:
            logger.exception("Prediction failed")
            return m.error(str(e) or type(e).__name__)
        return m.ok(score=score)

    def _reply(self, request_id: Optional[int], body: Dict[str, Any]) -> None:
        if request_id is None:
            return
        self._post({"requestId": request_id, **body})

    def _post(self, message: Dict[str, Any]) -> None:
        try:
            self._link.from_engine.send(message)
        except TransportUnavailable:
            logger.debug("Pipeline context gone, dropping %s", message.get("type", "response"))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _begin_load(self) -> None:
        if self.engine.is_loading or self.engine.is_ready:
            return
        self._spawn(self._load())

    async def _load(self) -> None:
        try:
            await self.engine.load()
        except EngineLoadError as e:
            self._post(m.ModelReady(status="error", error=str(e)).to_wire())
            return
        self._post(m.ModelReady(status="success", version=self.engine.version).to_wire())


class EngineClient:
    """Pipeline-side proxy for a remote ScoringEngine."""

    def __init__(self, link: Link, timeout_s: float = 10.0):
        self._link = link
        self.timeout_s = timeout_s
        self._ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future] = {}
        self._listeners: List[Callable[[Any], None]] = []
        self._reader: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self._link.from_engine.attach()
        self._reader = asyncio.create_task(self._read())

    async def stop(self) -> None:
        self._link.from_engine.detach()
        if self._reader is not None:
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        for fut in self._pending.values():
            if not fut.done():
                fut.set_exception(TransportUnavailable("engine client stopped"))
        self._pending.clear()

    def on_event(self, fn: Callable[[Any], None]) -> None:
        """Register a callback(message) for unsolicited engine messages (MODEL_READY)."""
        self._listeners.append(fn)

    @property
    def in_flight(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(self, message: Any, timeout_s: Optional[float] = None) -> Dict[str, Any]:
        """
        Send *message* and await the response carrying the same requestId.
        Raises TransportUnavailable or asyncio.TimeoutError; a timed-out
        request is forgotten so its late response is discarded.
        """
        request_id = next(self._ids)
        message.request_id = request_id
        fut = asyncio.get_running_loop().create_future()
        self._pending[request_id] = fut
        try:
            self._link.to_engine.send(message.to_wire())
            return await asyncio.wait_for(fut, timeout_s or self.timeout_s)
        finally:
            self._pending.pop(request_id, None)

    async def predict(self, rows: Sequence[Sequence[float]]) -> float:
        response = await self.request(m.Predict(data=[list(r) for r in rows]))
        if response.get("status") == "success":
            return float(response["score"])
        if response.get("code") == NOT_READY:
            raise EngineNotReady(response.get("error", "Model not ready"))
        raise PredictError(response.get("error", "unknown prediction error"))

    async def load_model(self) -> Dict[str, Any]:
        return await self.request(m.LoadModel())

    async def check_status(self) -> Dict[str, Any]:
        return await self.request(m.CheckStatus())

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _read(self) -> None:
        while True:
            raw = await self._link.from_engine.receive()
            if raw is None:
                break
            request_id = raw.pop("requestId", None)
            if request_id is not None:
                fut = self._pending.get(request_id)
                if fut is None:
                    logger.debug("Dropping late response for request %s", request_id)
                elif not fut.done():
                    fut.set_result(raw)
                continue
            self._dispatch(raw)

    def _dispatch(self, raw: Dict[str, Any]) -> None:
        try:
            msg = m.parse_message(raw)
        except ValidationError:
            logger.warning("Ignoring malformed engine message: %r", raw)
            return
        for listener in self._listeners:
            try:
                listener(msg)
            except Exception:
                logger.exception("Engine event listener failed")
