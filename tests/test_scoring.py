"""
Unit tests for the scoring engine lifecycle and its backends.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import ScriptedEngine
from drift.errors import EngineLoadError, EngineNotReady
from drift.inference.features import BehaviorSample, normalize
from drift.inference.scoring import (
    EngineState,
    ModelScorer,
    RuleBasedScorer,
    build_engine,
    validate_window,
)

W = 10
ZEROS = [[0.0] * 5 for _ in range(W)]


class TestLifecycle:
    async def test_starts_not_loaded(self):
        e = RuleBasedScorer(W)
        assert e.state is EngineState.NOT_LOADED
        assert e.status() == {"isReady": False, "isLoading": False}

    async def test_predict_before_load_fails_fast(self):
        with pytest.raises(EngineNotReady):
            await RuleBasedScorer(W).predict(ZEROS)

    async def test_load_makes_ready(self):
        e = RuleBasedScorer(W)
        await e.load()
        assert e.is_ready
        assert e.version == "rule-v1"

    async def test_loading_state_visible_while_load_runs(self):
        e = ScriptedEngine()
        e.load_gate = asyncio.Event()
        task = asyncio.create_task(e.load())
        await asyncio.sleep(0)
        assert e.status() == {"isReady": False, "isLoading": True}
        with pytest.raises(EngineNotReady):
            await e.predict(ZEROS)
        e.load_gate.set()
        await task
        assert e.status() == {"isReady": True, "isLoading": False}

    async def test_failed_load_is_terminal_until_reloaded(self):
        e = ScriptedEngine()
        e.fail_load = True
        with pytest.raises(EngineLoadError):
            await e.load()
        assert e.state is EngineState.FAILED
        assert "weights missing" in e.last_error
        with pytest.raises(EngineNotReady):
            await e.predict(ZEROS)

        e.fail_load = False
        await e.load()
        assert e.is_ready

    async def test_load_is_idempotent_when_ready(self):
        e = RuleBasedScorer(W)
        await e.load()
        await e.load()
        assert e.is_ready


class TestValidation:
    def test_wrong_length(self):
        with pytest.raises(ValueError):
            validate_window(ZEROS[:-1], W)

    def test_wrong_width(self):
        with pytest.raises(ValueError):
            validate_window([[0.0] * 4] * W, W)

    async def test_predict_rejects_wrong_shape(self):
        e = RuleBasedScorer(W)
        await e.load()
        with pytest.raises(ValueError):
            await e.predict(ZEROS[:3])


class TestRuleBasedScorer:
    async def test_zero_window_scores_zero(self):
        e = RuleBasedScorer(W)
        await e.load()
        assert await e.predict(ZEROS) == 0.0

    async def test_all_ones_scores_one(self):
        e = RuleBasedScorer(W)
        await e.load()
        assert await e.predict([[1.0] * 5] * W) == pytest.approx(1.0)

    async def test_only_latest_vector_counts(self):
        e = RuleBasedScorer(W)
        await e.load()
        rows = [[1.0] * 5] * (W - 1) + [[0.0] * 5]
        assert await e.predict(rows) == 0.0

    async def test_tab_switching_dominates(self):
        e = RuleBasedScorer(W)
        await e.load()
        tabs = await e.predict(ZEROS[:-1] + [[1.0, 0, 0, 0, 0]])
        errors = await e.predict(ZEROS[:-1] + [[0, 0, 0, 0, 1.0]])
        assert tabs > errors > 0.0

    async def test_erratic_scrolling_scores_higher(self):
        e = RuleBasedScorer(W)
        await e.load()
        calm = BehaviorSample(scroll_velocity_avg=40, mouse_entropy=0.1)
        erratic = BehaviorSample(scroll_velocity_avg=40, is_scroll_erratic=True, mouse_entropy=0.1)
        calm_score = await e.predict(ZEROS[:-1] + [normalize(calm, 2).as_list()])
        erratic_score = await e.predict(ZEROS[:-1] + [normalize(erratic, 2).as_list()])
        assert erratic_score > calm_score

    def test_unknown_weight_rejected(self):
        with pytest.raises(ValueError):
            RuleBasedScorer(W, weights={"heart_rate": 1.0})


class TestModelScorer:
    async def test_missing_file_fails_load(self, tmp_path):
        e = ModelScorer(tmp_path / "nope.joblib", W)
        with pytest.raises(EngineLoadError):
            await e.load()
        assert e.state is EngineState.FAILED

    async def test_fitted_classifier_scores_window(self, tmp_path):
        joblib = pytest.importorskip("joblib")
        linear_model = pytest.importorskip("sklearn.linear_model")
        import numpy as np

        X = np.vstack([np.zeros((20, W * 5)), np.ones((20, W * 5))])
        y = np.array([0] * 20 + [1] * 20)
        model = linear_model.LogisticRegression().fit(X, y)
        path = tmp_path / "model.joblib"
        joblib.dump(model, path)

        e = ModelScorer(path, W)
        await e.load()
        assert e.version == "LogisticRegression"
        low = await e.predict(ZEROS)
        high = await e.predict([[1.0] * 5] * W)
        assert 0.0 <= low < 0.5 < high <= 1.0


class TestBuildEngine:
    def test_rule(self):
        assert isinstance(build_engine("rule", W), RuleBasedScorer)

    def test_model_needs_path(self):
        with pytest.raises(ValueError):
            build_engine("model", W)

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_engine("oracle", W)
