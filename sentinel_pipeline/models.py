"""
Data model.
============
Value objects shared by every stage:

  CanonicalEvent   one normalized login row (created once, never mutated)
  EventRisk        per-event score, level and ordered reasons
  Alert            1:1 view of an EventRisk, ranked by score
  Summary          dataset-level tallies
  TrendPoint       labelled value for the hourly / daily series
  TopRiskEntity    per-subject max score and alert count
  DetectionResult  the bundle handed back to callers

Every type round-trips through as_dict()/from_dict() so a stored bundle can
be restored and re-derived without the raw events.
"""
from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd


@dataclass(frozen=True)
class CanonicalEvent:
    row_id: int
    user_id: str
    timestamp: str
    lat: float = 0.0
    long: float = 0.0
    device_id: str = "unknown"
    ip_address: Optional[str] = None
    login_result: Optional[str] = None
    # Every source column keyed by its lower-cased alphanumeric-only header
    extra: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d = dataclasses.asdict(self)
        d["extra"] = dict(self.extra)
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CanonicalEvent":
        return cls(
            row_id=int(d["row_id"]),
            user_id=str(d["user_id"]),
            timestamp=str(d["timestamp"]),
            lat=float(d.get("lat", 0.0)),
            long=float(d.get("long", 0.0)),
            device_id=str(d.get("device_id", "unknown")),
            ip_address=d.get("ip_address"),
            login_result=d.get("login_result"),
            extra={str(k): str(v) for k, v in (d.get("extra") or {}).items()},
        )


@dataclass(frozen=True)
class EventRisk:
    row_id: int
    user_id: str
    timestamp: str
    score: int
    level: str
    reasons: List[str] = field(default_factory=list)

    def with_level(self, level: str) -> "EventRisk":
        return dataclasses.replace(self, level=level, reasons=list(self.reasons))

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "EventRisk":
        return cls(
            row_id=int(d["row_id"]),
            user_id=str(d["user_id"]),
            timestamp=str(d["timestamp"]),
            score=int(d["score"]),
            level=str(d["level"]),
            reasons=[str(r) for r in d.get("reasons", [])],
        )


@dataclass(frozen=True)
class Alert:
    id: str
    severity: str
    user_id: str
    title: str
    description: str
    timestamp: str
    score: int

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Alert":
        return cls(**{f.name: d[f.name] for f in dataclasses.fields(cls)})


@dataclass(frozen=True)
class Summary:
    total_events: int
    total_users: int
    anomaly_count: int
    high_risk_count: int
    medium_risk_count: int
    low_risk_count: int
    average_risk_score: float

    def as_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Summary":
        return cls(**{f.name: d[f.name] for f in dataclasses.fields(cls)})


@dataclass(frozen=True)
class TrendPoint:
    label: str
    value: float


@dataclass(frozen=True)
class TopRiskEntity:
    user_id: str
    max_score: int
    alert_count: int


@dataclass(frozen=True)
class DetectionResult:
    event_risk: List[EventRisk]
    alerts: List[Alert]
    summary: Summary
    hourly_risk_trend: List[TrendPoint]
    daily_alert_trend: List[TrendPoint]
    top_risk_entities: List[TopRiskEntity]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def as_dict(self) -> Dict[str, Any]:
        return {
            "event_risk": [r.as_dict() for r in self.event_risk],
            "alerts": [a.as_dict() for a in self.alerts],
            "summary": self.summary.as_dict(),
            "hourly_risk_trend": [dataclasses.asdict(p) for p in self.hourly_risk_trend],
            "daily_alert_trend": [dataclasses.asdict(p) for p in self.daily_alert_trend],
            "top_risk_entities": [dataclasses.asdict(e) for e in self.top_risk_entities],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionResult":
        return cls(
            event_risk=[EventRisk.from_dict(r) for r in d["event_risk"]],
            alerts=[Alert.from_dict(a) for a in d["alerts"]],
            summary=Summary.from_dict(d["summary"]),
            hourly_risk_trend=[TrendPoint(str(p["label"]), float(p["value"])) for p in d["hourly_risk_trend"]],
            daily_alert_trend=[TrendPoint(str(p["label"]), float(p["value"])) for p in d["daily_alert_trend"]],
            top_risk_entities=[
                TopRiskEntity(str(e["user_id"]), int(e["max_score"]), int(e["alert_count"]))
                for e in d["top_risk_entities"]
            ],
        )

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.as_dict(), f, indent=2)
        return path

    @classmethod
    def load(cls, path: str | Path) -> "DetectionResult":
        with Path(path).open(encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    # ------------------------------------------------------------------
    # Tabular views
    # ------------------------------------------------------------------

    def frames(self) -> Dict[str, pd.DataFrame]:
        """Return one DataFrame per list-valued section of the bundle."""
        event_risk = pd.DataFrame(
            [{**r.as_dict(), "reasons": "; ".join(r.reasons)} for r in self.event_risk],
            columns=["row_id", "user_id", "timestamp", "score", "level", "reasons"],
        )
        alerts = pd.DataFrame(
            [a.as_dict() for a in self.alerts],
            columns=[f.name for f in dataclasses.fields(Alert)],
        )
        hourly = pd.DataFrame([dataclasses.asdict(p) for p in self.hourly_risk_trend], columns=["label", "value"])
        daily = pd.DataFrame([dataclasses.asdict(p) for p in self.daily_alert_trend], columns=["label", "value"])
        top = pd.DataFrame(
            [dataclasses.asdict(e) for e in self.top_risk_entities],
            columns=["user_id", "max_score", "alert_count"],
        )
        return {
            "event_risk": event_risk,
            "alerts": alerts,
            "hourly_risk_trend": hourly,
            "daily_alert_trend": daily,
            "top_risk_entities": top,
        }


def events_to_frame(events: List[CanonicalEvent]) -> pd.DataFrame:
    """Canonical columns only; the preserved extras stay on the objects."""
    cols = ["row_id", "user_id", "timestamp", "lat", "long", "device_id", "ip_address", "login_result"]
    return pd.DataFrame(
        [{c: getattr(e, c) for c in cols} for e in events],
        columns=cols,
    )
