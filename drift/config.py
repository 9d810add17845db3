"""
Central configuration for the Drift focus engine.
All values can be overridden via environment variables or a local config.json.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

_ROOT = Path(__file__).parent.parent
_CONFIG_FILE = _ROOT / "config.json"


@dataclass
class Config:
    # API
    api_host: str = "127.0.0.1"
    api_port: int = 8766

    # Scheduler
    alarm_name: str = "drift-analysis-alarm"
    alarm_interval_minutes: float = 1.0
    tick_interval_s: float = 0.0             # debug override; 0 = use alarm_interval_minutes

    # Inference
    window_size: int = 10                    # feature vectors per prediction
    scorer: str = "rule"                     # "rule" | "model"
    model_path: Path = field(default_factory=lambda: _ROOT / "data" / "drift_model.joblib")
    predict_timeout_s: float = 10.0

    # Sensor
    sensor_flush_interval_s: float = 30.0
    sensor_initial_delay_s: float = 5.0
    max_tab_sensors: int = 64                # server-held /telemetry sensors

    # Storage
    data_dir: Path = field(default_factory=lambda: _ROOT / "data")
    state_file: str = "storage.json"
    max_history_entries: int = 1000

    # Interventions
    desktop_notifications: bool = True
    break_url: str = "/break"

    log_level: str = "INFO"

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        self.model_path = Path(self.model_path)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def tick_seconds(self) -> float:
        if self.tick_interval_s > 0:
            return self.tick_interval_s
        return self.alarm_interval_minutes * 60.0

    @property
    def state_path(self) -> Path:
        return self.data_dir / self.state_file

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "Config":
        cfg = cls()
        path = config_file or _CONFIG_FILE
        if path.exists():
            overrides = json.loads(path.read_text())
            for k, v in overrides.items():
                if hasattr(cfg, k):
                    setattr(cfg, k, _coerce(getattr(cfg, k), v))
        # environment variable overrides (DRIFT_*)
        for k in cfg.__dataclass_fields__:  # type: ignore[attr-defined]
            env_key = f"DRIFT_{k.upper()}"
            if env_key in os.environ:
                setattr(cfg, k, _coerce(getattr(cfg, k), os.environ[env_key]))
        cfg.__post_init__()
        return cfg


def _coerce(current, value):
    if isinstance(current, bool) and isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return type(current)(value)


# Module-level singleton
config = Config.load()
