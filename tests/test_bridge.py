"""
Tests for the cross-context transport: channels, the engine host and the
pipeline-side client (request ids, timeouts, MODEL_READY announcements).
"""

from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from conftest import ScriptedEngine, eventually
from drift.errors import EngineNotReady, PredictError, TransportUnavailable
from drift.transport import messages as m
from drift.transport.channel import Channel

W = 10
ZEROS = [[0.0] * 5 for _ in range(W)]


class TestChannel:
    async def test_send_requires_attached_receiver(self):
        ch = Channel("test")
        with pytest.raises(TransportUnavailable):
            ch.send({"type": "CHECK_STATUS"})

    async def test_messages_cross_as_copies(self):
        ch = Channel("test")
        ch.attach()
        original = {"type": "PREDICT", "data": [[0.0] * 5]}
        ch.send(original)
        original["data"][0][0] = 1.0
        received = await ch.receive()
        assert received["data"][0][0] == 0.0

    async def test_detach_wakes_receiver(self):
        ch = Channel("test")
        ch.attach()
        waiter = asyncio.create_task(ch.receive())
        await asyncio.sleep(0)
        ch.detach()
        assert await waiter is None


class TestMessages:
    def test_behavior_update_accepts_legacy_scroll_field(self):
        msg = m.parse_message({"type": "BEHAVIOR_UPDATE", "payload": {"scrollVelocity": 12.5}})
        assert msg.payload.to_sample().scroll_velocity_avg == 12.5

    def test_behavior_update_sanitizes_numbers(self):
        msg = m.parse_message({
            "type": "BEHAVIOR_UPDATE",
            "payload": {"scrollVelocityAvg": -3, "backspaceCount": "many", "timestamp": 1_700_000_000_000},
        })
        sample = msg.payload.to_sample()
        assert sample.scroll_velocity_avg == 0.0
        assert sample.backspace_count == 0
        assert sample.timestamp == pytest.approx(1_700_000_000.0)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            m.parse_message({"type": "SELF_DESTRUCT"})

    def test_wire_form_uses_aliases(self):
        wire = m.TriggerIntervention(score=0.9, breakUrl="/break").to_wire()
        assert wire == {"type": "TRIGGER_INTERVENTION", "score": 0.9, "breakUrl": "/break"}


class TestEngineBridge:
    async def test_load_model_initiates_then_announces_ready(self, engine_pair):
        engine = ScriptedEngine()
        client, _ = await engine_pair(engine)
        events = []
        client.on_event(events.append)

        response = await client.load_model()
        assert response == {"status": "initiated"}
        await eventually(lambda: events)
        assert isinstance(events[0], m.ModelReady)
        assert events[0].status == "success"
        assert events[0].version == "scripted-v1"

        again = await client.load_model()
        assert again == {"status": "success", "version": "scripted-v1"}

    async def test_failed_load_announced_as_error(self, engine_pair):
        engine = ScriptedEngine()
        engine.fail_load = True
        client, _ = await engine_pair(engine)
        events = []
        client.on_event(events.append)

        await client.load_model()
        await eventually(lambda: events)
        assert events[0].status == "error"
        assert "weights missing" in events[0].error

    async def test_predict_round_trip(self, engine_pair):
        engine = ScriptedEngine(scores=[0.42])
        client, _ = await engine_pair(engine, autoload=True)
        await eventually(lambda: engine.is_ready)
        assert await client.predict(ZEROS) == pytest.approx(0.42)
        assert engine.calls == [ZEROS]

    async def test_predict_before_ready_is_not_ready(self, engine_pair):
        client, _ = await engine_pair(ScriptedEngine())
        with pytest.raises(EngineNotReady):
            await client.predict(ZEROS)

    async def test_wrong_window_shape_is_predict_error(self, engine_pair):
        engine = ScriptedEngine()
        client, _ = await engine_pair(engine, autoload=True)
        await eventually(lambda: engine.is_ready)
        with pytest.raises(PredictError):
            await client.predict(ZEROS[:4])

    async def test_check_status_is_idempotent(self, engine_pair):
        engine = ScriptedEngine()
        engine.load_gate = asyncio.Event()
        client, _ = await engine_pair(engine)

        before = await client.check_status()
        assert before == {"isReady": False, "isLoading": False}
        for _ in range(3):
            assert await client.check_status() == before

        await client.load_model()
        loading = await client.check_status()
        assert loading == {"isReady": False, "isLoading": True}
        for _ in range(3):
            assert await client.check_status() == loading

        engine.load_gate.set()
        await eventually(lambda: engine.is_ready)
        assert await client.check_status() == {"isReady": True, "isLoading": False}

    async def test_concurrent_requests_matched_by_id(self, engine_pair):
        engine = ScriptedEngine(scores=[0.1, 0.2, 0.3])
        client, _ = await engine_pair(engine, autoload=True)
        await eventually(lambda: engine.is_ready)

        scores = await asyncio.gather(*(client.predict(ZEROS) for _ in range(3)))
        assert sorted(scores) == pytest.approx([0.1, 0.2, 0.3])
        assert client.in_flight == 0

    async def test_out_of_order_responses(self, engine_pair):
        engine = ScriptedEngine(scores=[0.9])
        client, _ = await engine_pair(engine, autoload=True)
        await eventually(lambda: engine.is_ready)
        engine.predict_delay = 0.1

        slow = asyncio.create_task(client.predict(ZEROS))
        await asyncio.sleep(0.01)
        engine.predict_delay = 0.0
        status = await client.check_status()

        # The status reply overtakes the slow predict and is still routed correctly
        assert status == {"isReady": True, "isLoading": False}
        assert not slow.done()
        assert await slow == pytest.approx(0.9)

    async def test_timeout_drops_late_response(self, engine_pair):
        engine = ScriptedEngine(scores=[0.5])
        client, _ = await engine_pair(engine, timeout_s=0.05, autoload=True)
        await eventually(lambda: engine.is_ready)
        engine.predict_delay = 0.2

        with pytest.raises(asyncio.TimeoutError):
            await client.predict(ZEROS)
        assert client.in_flight == 0

        # Let the late response arrive; it must not disturb the next request
        await asyncio.sleep(0.25)
        engine.predict_delay = 0.0
        assert await client.check_status() == {"isReady": True, "isLoading": False}

    async def test_stopped_engine_is_unavailable(self, engine_pair):
        client, host = await engine_pair(ScriptedEngine())
        await host.stop()
        with pytest.raises(TransportUnavailable):
            await client.check_status()
