"""
Tests for the key-value store, user settings, configuration loading and
intervention notifications.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from drift.actions.notifications import Notifier, format_message
from drift.config import Config
from drift.errors import StorageError
from drift.settings import (
    DEFAULTS,
    THRESHOLDS,
    Sensitivity,
    current_threshold,
    get_settings,
    threshold_for,
    update_settings,
)
from drift.storage import KeyValueStore

# ── KeyValueStore ────────────────────────────────────────────────────────────


class TestKeyValueStore:
    async def test_missing_keys_omitted(self, store):
        await store.set({"a": 1})
        assert await store.get(["a", "b"]) == {"a": 1}

    async def test_persists_across_instances(self, tmp_path: Path):
        path = tmp_path / "state.json"
        await KeyValueStore(path).set({"focusMinutes": 3})
        assert await KeyValueStore(path).get(["focusMinutes"]) == {"focusMinutes": 3}
        assert json.loads(path.read_text()) == {"focusMinutes": 3}

    async def test_values_are_copied(self, store):
        value = [1, 2]
        await store.set({"k": value})
        value.append(3)
        got = await store.get(["k"])
        got["k"].append(4)
        assert await store.get(["k"]) == {"k": [1, 2]}

    async def test_remove(self, store):
        await store.set({"a": 1, "b": 2})
        await store.remove(["a"])
        assert await store.get(["a", "b"]) == {"b": 2}

    async def test_malformed_file_is_moved_aside_not_overwritten(self, tmp_path: Path):
        path = tmp_path / "state.json"
        truncated = '{"focusMinutes": 42, "focusHistory": [{"distractionScore": 0.2'
        path.write_text(truncated)

        s = KeyValueStore(path)
        assert await s.get(["focusMinutes"]) == {}
        await s.set({"sensitivity": "high"})

        assert json.loads(path.read_text()) == {"sensitivity": "high"}
        assert (tmp_path / "state.json.corrupt").read_text() == truncated

    async def test_non_object_document_is_moved_aside(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2, 3]")
        assert await KeyValueStore(path).get(["anything"]) == {}
        assert (tmp_path / "state.json.corrupt").exists()
        assert not path.exists()

    async def test_malformed_file_that_cannot_be_moved_raises(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "state.json"
        path.write_text("{not json")

        def refuse(src, dst):
            raise PermissionError("read-only")

        monkeypatch.setattr("drift.storage.os.replace", refuse)
        with pytest.raises(StorageError):
            await KeyValueStore(path).get(["anything"])
        assert path.read_text() == "{not json"

    async def test_unserialisable_value_raises_and_keeps_state(self, tmp_path: Path):
        s = KeyValueStore(tmp_path / "state.json")
        await s.set({"ok": 1})
        with pytest.raises(StorageError):
            await s.set({"bad": object()})
        assert await s.get(["ok", "bad"]) == {"ok": 1}


# ── Settings ─────────────────────────────────────────────────────────────────


class TestSettings:
    async def test_defaults(self, store):
        assert await get_settings(store) == DEFAULTS

    def test_threshold_table(self):
        assert THRESHOLDS[Sensitivity.LOW] == 0.8
        assert THRESHOLDS[Sensitivity.BALANCED] == 0.6
        assert THRESHOLDS[Sensitivity.HIGH] == 0.4

    def test_unknown_sensitivity_maps_to_balanced(self):
        assert threshold_for("paranoid") == 0.6

    async def test_update_and_threshold(self, store):
        s = await update_settings(store, {"sensitivity": "low", "userName": "Sam"})
        assert s["sensitivity"] == "low"
        assert s["userName"] == "Sam"
        assert await current_threshold(store) == 0.8

    async def test_unknown_keys_ignored(self, store):
        s = await update_settings(store, {"volume": 11})
        assert "volume" not in s

    async def test_invalid_sensitivity_rejected(self, store):
        with pytest.raises(ValueError):
            await update_settings(store, {"sensitivity": "extreme"})
        assert (await get_settings(store))["sensitivity"] == "balanced"

    async def test_onboarding_flag_coerced(self, store):
        s = await update_settings(store, {"onboardingCompleted": "true"})
        assert s["onboardingCompleted"] is True

    async def test_bad_stored_value_falls_back_to_default(self, store):
        await store.set({"sensitivity": "???"})
        assert (await get_settings(store))["sensitivity"] == "balanced"
        assert await current_threshold(store) == 0.6


# ── Config ───────────────────────────────────────────────────────────────────


class TestConfig:
    def test_defaults(self, tmp_path):
        cfg = Config(data_dir=tmp_path)
        assert cfg.window_size == 10
        assert cfg.max_history_entries == 1000
        assert cfg.tick_seconds == 60.0
        assert cfg.state_path == tmp_path / "storage.json"

    def test_debug_tick_override(self, tmp_path):
        assert Config(data_dir=tmp_path, tick_interval_s=5).tick_seconds == 5

    def test_file_and_env_overrides(self, tmp_path, monkeypatch):
        cfg_file = tmp_path / "config.json"
        cfg_file.write_text(json.dumps({"window_size": 5, "data_dir": str(tmp_path)}))
        monkeypatch.setenv("DRIFT_DESKTOP_NOTIFICATIONS", "false")
        monkeypatch.setenv("DRIFT_ALARM_INTERVAL_MINUTES", "0.5")
        cfg = Config.load(cfg_file)
        assert cfg.window_size == 5
        assert cfg.desktop_notifications is False
        assert cfg.tick_seconds == 30.0


# ── Notifications ────────────────────────────────────────────────────────────


class TestNotifier:
    def test_message_format(self):
        assert format_message(0.85) == "Focus drifting? Take a break! (AI Score: 85%)"

    def test_trigger_broadcasts_wire_message(self):
        n = Notifier(desktop=False, break_url="/break")
        received = []
        unsubscribe = n.subscribe(received.append)
        n.trigger(0.7)
        assert received == [{
            "type": "TRIGGER_INTERVENTION",
            "score": 0.7,
            "title": "Drift",
            "message": "Focus drifting? Take a break! (AI Score: 70%)",
            "breakUrl": "/break",
        }]
        unsubscribe()
        n.trigger(0.8)
        assert len(received) == 1
        assert len(n.sent) == 2

    def test_failing_subscriber_does_not_block_others(self):
        n = Notifier(desktop=False)
        received = []

        def broken(_):
            raise RuntimeError("overlay crashed")

        n.subscribe(broken)
        n.subscribe(received.append)
        n.trigger(0.9)
        assert len(received) == 1

    def test_desktop_failure_is_not_fatal(self, monkeypatch):
        n = Notifier(desktop=True)
        monkeypatch.setattr(n, "_run", lambda cmd: False)
        assert n.trigger(0.9).score == 0.9
