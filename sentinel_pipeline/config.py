"""
Sentinel Configuration
=======================
Two layers:
  - DetectionSettings: the numeric thresholds the scoring engine and the
    triage derivation read. Frozen; the engine never mutates it.
  - SentinelConfig:    run-level config (I/O paths, format hint, plotting,
    top-N caps) wrapping a DetectionSettings.

Usage:
    cfg = SentinelConfig()                                   # full defaults
    cfg = SentinelConfig(settings=DetectionSettings(warning_threshold=60))
    cfg = SentinelConfig.from_json("config.json")
"""
from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Detection thresholds
# ---------------------------------------------------------------------------

# Operator ranges (inclusive) accepted by validate().
_SETTING_RANGES: Dict[str, tuple] = {
    "warning_threshold": (10, 90),
    "critical_threshold": (20, 100),
    "impossible_travel_speed_kmh": (100, 2000),
    "rapid_device_switch_minutes": (1, 120),
    "burst_window_minutes": (5, 120),
    "burst_event_count": (2, 20),
}


@dataclass(frozen=True)
class DetectionSettings:
    """Thresholds for severity classification and the sequential rules."""

    warning_threshold: float = 55
    critical_threshold: float = 80
    impossible_travel_speed_kmh: float = 850
    rapid_device_switch_minutes: float = 20
    burst_window_minutes: float = 30
    burst_event_count: int = 4

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionSettings":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(d) - known)
        if unknown:
            raise ValueError(f"Unknown detection settings: {unknown}")
        return cls(**d)

    def with_thresholds(self, warning: float, critical: float) -> "DetectionSettings":
        return dataclasses.replace(self, warning_threshold=warning, critical_threshold=critical)

    def validate(self) -> None:
        """Raise ValueError listing every out-of-range or inconsistent value.

        Enforcement belongs to the caller (CLI, config loader); the scoring
        engine accepts whatever it is given.
        """
        problems: List[str] = []
        for name, (lo, hi) in _SETTING_RANGES.items():
            value = getattr(self, name)
            if not lo <= value <= hi:
                problems.append(f"{name}={value} outside [{lo}, {hi}]")
        if self.warning_threshold >= self.critical_threshold:
            problems.append(
                f"warning_threshold ({self.warning_threshold}) must be below "
                f"critical_threshold ({self.critical_threshold})"
            )
        if problems:
            raise ValueError("Invalid detection settings: " + "; ".join(problems))


DEFAULT_SETTINGS = DetectionSettings()


# ---------------------------------------------------------------------------
# Run-level config
# ---------------------------------------------------------------------------

@dataclass
class IOConfig:
    """Input/output locations for a batch run."""
    input_path: Path = Path("data/login_events.csv")
    output_dir: Path = Path("output")

    # "csv", "json" or "text"; None = infer from the input suffix
    input_format: Optional[str] = None

    make_plots: bool = True


@dataclass
class SentinelConfig:
    """Master config for a detection run."""
    io: IOConfig = field(default_factory=IOConfig)
    settings: DetectionSettings = field(default_factory=DetectionSettings)

    # Top-N entity caps: primary summary vs. interactive (re-derived) views
    summary_top_n: int = 8
    live_top_n: int = 20

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def to_json(self, path: str | Path) -> None:
        with open(path, "w") as f:
            json.dump(self.as_dict(), f, indent=2, default=str)

    @classmethod
    def from_json(cls, path: str | Path) -> "SentinelConfig":
        with open(path) as f:
            d = json.load(f)
        io = dict(d.get("io", {}))
        for key in ("input_path", "output_dir"):
            if key in io and io[key] is not None:
                io[key] = Path(io[key])
        return cls(
            io=IOConfig(**io),
            settings=DetectionSettings.from_dict(d.get("settings", {})),
            summary_top_n=d.get("summary_top_n", 8),
            live_top_n=d.get("live_top_n", 20),
        )
