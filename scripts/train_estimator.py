"""
Train the learned Drift scorer.

Generates labeled feature windows by running the synthetic page scenarios
through a real BehaviorSensor and the feature normalizer, then trains a
GradientBoostingClassifier over the flattened W×5 window and saves it
where ModelScorer looks for it (config.model_path).

Usage:
    python scripts/train_estimator.py
    python scripts/train_estimator.py --windows 2000 --output data/drift_model.joblib
"""

from __future__ import annotations

import argparse
import random
import sys
import time
from pathlib import Path

# Make sure the package root is on the path when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np

from drift.config import config
from drift.inference.features import FEATURE_NAMES, normalize
from drift.inference.window import FeatureWindow
from drift.telemetry.sensor import BehaviorSensor
from drift.telemetry.sources.browser import apply_page_event
from drift.telemetry.sources.synthetic import SCENARIOS, events_for

MODEL_VERSION = "gbc-v1"


# ---------------------------------------------------------------------------
# Synthetic data generation
# ---------------------------------------------------------------------------

def _make_window(scenario: str, window_size: int, interval_s: float, rng: random.Random) -> FeatureWindow:
    """One window of W consecutive ticks, all from the same scenario."""
    sensor = BehaviorSensor()
    window = FeatureWindow(window_size)
    t_ms = 1_700_000_000_000.0
    for _ in range(window_size):
        for event in events_for(scenario, t_ms, interval_s, seed=rng.random()):
            apply_page_event(sensor, event)
        t_ms += interval_s * 1000
        sample = sensor.flush(now=t_ms / 1000.0)
        tabs = rng.randint(2, 15) if scenario == "distracted" else rng.randint(0, 2)
        window.append(normalize(sample, tabs))
    return window


def generate_dataset(n_windows: int, window_size: int, interval_s: float, seed: int = 42):
    """Returns X (n × W·5) and y (n,), 1 for distracted windows."""
    rng = random.Random(seed)
    X_rows, y_rows = [], []
    for i in range(n_windows):
        scenario = SCENARIOS[i % len(SCENARIOS)]
        window = _make_window(scenario, window_size, interval_s, rng)
        X_rows.append(np.asarray(window.to_rows(), dtype=np.float32).reshape(-1))
        y_rows.append(1 if scenario == "distracted" else 0)
    return np.array(X_rows, dtype=np.float32), np.array(y_rows, dtype=np.int64)


# ---------------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------------

def train(n_windows: int, window_size: int, interval_s: float, output_path: Path) -> None:
    import joblib
    from sklearn.ensemble import GradientBoostingClassifier
    from sklearn.model_selection import train_test_split

    print(f"Generating {n_windows} synthetic windows ({window_size}×{len(FEATURE_NAMES)})…")
    X, y = generate_dataset(n_windows, window_size, interval_s)
    print(f"Dataset shape: X={X.shape}, y={y.shape}  |  distracted share: {y.mean():.2f}")

    X_train, X_test, y_train, y_test = train_test_split(
        X, y, test_size=0.2, random_state=42, stratify=y
    )

    model = GradientBoostingClassifier(
        n_estimators=150,
        max_depth=3,
        learning_rate=0.05,
        subsample=0.8,
        random_state=42,
    )

    print("Training GradientBoostingClassifier…")
    t0 = time.time()
    model.fit(X_train, y_train)
    elapsed = time.time() - t0

    print(f"\nResults ({elapsed:.1f}s):")
    print(f"  Train accuracy: {model.score(X_train, y_train):.4f}")
    print(f"  Test  accuracy: {model.score(X_test, y_test):.4f}")

    # Importances summed per feature across the window
    per_feature = model.feature_importances_.reshape(window_size, len(FEATURE_NAMES)).sum(axis=0)
    print("\nFeature importances:")
    for name, imp in sorted(zip(FEATURE_NAMES, per_feature), key=lambda x: -x[1]):
        bar = "█" * int(imp * 40)
        print(f"  {name:<18} {bar}  {imp:.3f}")

    model.drift_version = MODEL_VERSION
    output_path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(model, output_path)
    print(f"\nModel saved → {output_path}")
    print("Start the engine with DRIFT_SCORER=model to use it.")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(description="Train the Drift window classifier")
    parser.add_argument("--windows", type=int, default=1000, help="Training windows (default 1000)")
    parser.add_argument("--window-size", type=int, default=config.window_size)
    parser.add_argument("--interval", type=float, default=config.sensor_flush_interval_s,
                        help="Seconds of activity per tick")
    parser.add_argument("--output", type=Path, default=config.model_path,
                        help="Output path for saved model")
    args = parser.parse_args()
    train(args.windows, args.window_size, args.interval, args.output)


if __name__ == "__main__":
    main()
