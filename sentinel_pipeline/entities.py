"""Per-subject drill-down helpers built on a DetectionResult."""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .models import Alert, DetectionResult, EventRisk

# (pattern, category label); first match wins
RISK_CATEGORIES: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"impossible travel", re.I), "Impossible Travel"),
    (re.compile(r"geolocation|spoofed", re.I), "Geo Spoofing"),
    (re.compile(r"device switching", re.I), "Device Switch"),
    (re.compile(r"missing device", re.I), "No Device"),
    (re.compile(r"off-hours", re.I), "Off-Hours"),
    (re.compile(r"failed auth", re.I), "Auth Failure"),
    (re.compile(r"IP reputation|IP shift", re.I), "IP Anomaly"),
    (re.compile(r"login burst|burst freq", re.I), "Login Burst"),
)

SEVERITY_FILTERS = ("all", "high", "medium", "low")
TOP_REASONS = 4
MAX_REASON_LEN = 60


def categorize_reason(reason: str) -> Optional[str]:
    for pattern, label in RISK_CATEGORIES:
        if pattern.search(reason):
            return label
    return None


def filter_alerts(alerts: Sequence[Alert], severity: str = "all") -> List[Alert]:
    if severity not in SEVERITY_FILTERS:
        raise ValueError(f"Unknown severity filter '{severity}'. Use one of: {SEVERITY_FILTERS}")
    if severity == "all":
        return list(alerts)
    return [a for a in alerts if a.severity == severity]


@dataclass(frozen=True)
class EntityProfile:
    user_id: str
    high_count: int
    medium_count: int
    low_count: int
    average_score: int
    max_score: int
    top_reasons: List[Tuple[str, int]] = field(default_factory=list)
    events: List[EventRisk] = field(default_factory=list)


def _short(reason: str) -> str:
    return reason if len(reason) <= MAX_REASON_LEN else reason[: MAX_REASON_LEN - 3] + "..."


def build_entity_profile(result: DetectionResult, user_id: str) -> Optional[EntityProfile]:
    """Severity tallies, score stats and the most frequent reasons for one subject."""
    alerts = [a for a in result.alerts if a.user_id == user_id]
    if not alerts:
        return None
    events = [r for r in result.event_risk if r.user_id == user_id]

    reasons = Counter(_short(reason) for r in events for reason in r.reasons)
    severities = Counter(a.severity for a in alerts)
    mean = sum(a.score for a in alerts) / len(alerts)

    return EntityProfile(
        user_id=user_id,
        high_count=severities["high"],
        medium_count=severities["medium"],
        low_count=severities["low"],
        average_score=int(mean + 0.5),
        max_score=max(a.score for a in alerts),
        # most_common keeps first-seen order on ties
        top_reasons=reasons.most_common(TOP_REASONS),
        events=events,
    )
