"""
Focus Pipeline — owns the process-wide PipelineState and wires the pieces
together:

    BEHAVIOR_UPDATE / TAB_ACTIVATED / WINDOW_FOCUS  → state (no awaits)
    tick()  → normalize → window → PREDICT (engine) → controller

Awaits happen only at the predict call and at store reads and
writes; every counter is read and reset in one synchronous step.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..actions.notifications import Notifier
from ..errors import EngineNotReady, PredictError, TransportUnavailable
from ..inference.features import BehaviorSample, FeatureVector, normalize
from ..inference.window import FeatureWindow
from ..storage import KeyValueStore
from ..telemetry.history import HistoryStore
from ..transport import messages as m
from ..transport.bridge import EngineClient
from .controller import Decision, InterventionController

logger = logging.getLogger(__name__)

WINDOW_KEY = "featureHistory"
DEMO_SCORE = 0.85


@dataclass
class PipelineState:
    window: FeatureWindow
    latest_sample: Optional[BehaviorSample] = None
    tab_switch_count: int = 0
    last_active_tab: Optional[int] = None
    browser_focused: bool = True
    model_ready: bool = False
    model_version: Optional[str] = None
    model_error: Optional[str] = None
    tick_in_flight: bool = False
    ticks: int = 0
    last_vector: Optional[FeatureVector] = None
    last_tick_at: Optional[float] = None


@dataclass
class TickResult:
    status: str                  # busy | away | collecting | not_ready | failed | scored
    window_length: int = 0
    decision: Optional[Decision] = None
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class FocusPipeline:
    """
    Usage:
        pipeline = FocusPipeline(store, engine_client, notifier)
        await pipeline.start()               # restore state, request model load
        await pipeline.handle_message({...})  # from page contexts
        await pipeline.tick()                 # from the alarm
    """

    def __init__(
        self,
        store: KeyValueStore,
        engine: EngineClient,
        notifier: Notifier,
        window_size: int = 10,
        history_capacity: int = 1000,
    ):
        self._store = store
        self.engine = engine
        self.notifier = notifier
        self.state = PipelineState(window=FeatureWindow(window_size))
        self.history = HistoryStore(store, capacity=history_capacity)
        self.controller = InterventionController(store, self.history, notifier)
        engine.on_event(self._on_engine_event)

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.restore()
        await self.request_model_load()

    async def restore(self) -> None:
        saved = await self._store.get([WINDOW_KEY])
        self.state.window = FeatureWindow.from_rows(
            saved.get(WINDOW_KEY, []), self.state.window.size
        )
        await self.controller.restore()
        logger.info("Pipeline restored: window %d/%d, streak %d",
                    len(self.state.window), self.state.window.size, self.controller.streak)

    async def request_model_load(self) -> Dict[str, Any]:
        try:
            response = await self.engine.load_model()
        except (TransportUnavailable, asyncio.TimeoutError) as e:
            logger.error("Error requesting model load: %s", e)
            return m.error(str(e) or type(e).__name__)
        if response.get("status") == "success":
            self._mark_ready(response.get("version"))
        elif response.get("status") == "initiated":
            logger.info("Model load initiated")
        else:
            logger.error("Model load failed: %s", response.get("error"))
        return response

    # ------------------------------------------------------------------
    # Inbound messages (page contexts, engine)
    # ------------------------------------------------------------------

    async def handle_message(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dispatch one protocol message and return its response.
        Raises pydantic.ValidationError for malformed or unknown messages.
        """
        msg = m.parse_message(raw)

        if isinstance(msg, m.BehaviorUpdate):
            self.on_behavior_update(msg.payload.to_sample())
            return {"status": "received"}
        if isinstance(msg, m.TabActivated):
            self.on_tab_activated(msg.tab_id)
            return {"status": "received"}
        if isinstance(msg, m.WindowFocus):
            self.on_window_focus(msg.focused)
            return {"status": "received"}
        if isinstance(msg, m.CheckStatus):
            return await self.engine.check_status()
        if isinstance(msg, m.LoadModel):
            return await self.request_model_load()
        if isinstance(msg, m.ModelReady):
            self._on_engine_event(msg)
            return {"status": "received"}
        if isinstance(msg, m.DemoTrigger):
            logger.info("Demo notification trigger received")
            self.notifier.trigger(DEMO_SCORE)
            return {"status": "notification_triggered"}
        return m.error(f"Unsupported message type: {msg.type}")

    def on_behavior_update(self, sample: BehaviorSample) -> None:
        self.state.latest_sample = sample
        logger.debug("Behavior update received: velocity=%.3f hover=%s typing=%.0fms backspaces=%d",
                     sample.scroll_velocity_avg, sample.is_hovering_top,
                     sample.avg_typing_interval, sample.backspace_count)

    def on_tab_activated(self, tab_id: int) -> None:
        st = self.state
        if st.last_active_tab is not None and st.last_active_tab != tab_id:
            st.tab_switch_count += 1
            logger.debug("Tab switched, count %d", st.tab_switch_count)
        st.last_active_tab = tab_id

    def on_window_focus(self, focused: bool) -> None:
        if focused != self.state.browser_focused:
            logger.info("User %s the browser", "returned to" if focused else "left")
        self.state.browser_focused = focused

    def _on_engine_event(self, msg: Any) -> None:
        if not isinstance(msg, m.ModelReady):
            return
        if msg.status == "success":
            self._mark_ready(msg.version)
        else:
            self.state.model_ready = False
            self.state.model_error = msg.error
            logger.error("Model failed to load: %s", msg.error)

    def _mark_ready(self, version: Optional[str]) -> None:
        self.state.model_ready = True
        self.state.model_version = version
        self.state.model_error = None
        logger.info("Scoring model ready (%s)", version)

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def tick(self) -> TickResult:
        st = self.state
        if st.tick_in_flight:
            logger.info("Previous tick still waiting for a score, skipping")
            return TickResult("busy", len(st.window))
        if not st.browser_focused:
            st.tab_switch_count = 0
            logger.info("User is away, skipping analysis")
            return TickResult("away", len(st.window))

        # Read-and-reset in one step; nothing below may see a half-updated state
        sample = st.latest_sample or BehaviorSample(mouse_entropy=0.0)
        tab_switches = st.tab_switch_count
        st.latest_sample = None
        st.tab_switch_count = 0
        vector = normalize(sample, tab_switches)
        st.window.append(vector)
        st.last_vector = vector
        st.ticks += 1
        st.last_tick_at = time.time()
        rows = st.window.to_rows()
        full = st.window.is_full()

        st.tick_in_flight = True
        try:
            await self._store.set({WINDOW_KEY: rows})
            if not full:
                logger.info("Collecting data (%d/%d)", len(rows), st.window.size)
                return TickResult("collecting", len(rows))
            if not st.model_ready:
                logger.info("Model not ready yet, skipping prediction")
                return TickResult("not_ready", len(rows))
            try:
                score = await self.engine.predict(rows)
            except EngineNotReady:
                logger.info("Engine reported not ready, skipping prediction")
                return TickResult("not_ready", len(rows))
            except asyncio.TimeoutError:
                logger.warning("Prediction timed out, abandoning tick")
                return TickResult("failed", len(rows), error="timeout")
            except (PredictError, TransportUnavailable) as e:
                logger.warning("Prediction failed: %s", e)
                return TickResult("failed", len(rows), error=str(e))

            decision = await self.controller.on_score(score, sample, tab_switches)
            return TickResult("scored", len(rows), decision=decision)
        finally:
            st.tick_in_flight = False

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def current_state(self) -> Dict[str, Any]:
        st = self.state
        last = self.controller.last_decision
        return {
            "focus_state": self.controller.state.value,
            "distraction_score": last.score if last else None,
            "focus_score": round(1.0 - last.score, 4) if last else None,
            "threshold": last.threshold if last else None,
            "streak": self.controller.streak,
            "window_length": len(st.window),
            "window_size": st.window.size,
            "tab_switch_count": st.tab_switch_count,
            "browser_focused": st.browser_focused,
            "model_ready": st.model_ready,
            "model_version": st.model_version,
            "model_error": st.model_error,
            "ticks": st.ticks,
            "last_tick_at": st.last_tick_at,
            "timestamp": time.time(),
        }

    async def clear_data(self) -> None:
        await self.controller.reset()
