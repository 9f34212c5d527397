"""
Triage derivation.
===================
Turns scored events into the result bundle: alerts, summary, hourly and
daily trends, and top-risk subjects.

derive_result() is the single code path for this. A full run calls it right
after scoring; rederive() calls it again on a stored bundle when only the
thresholds change. Only EventRisk.score and the two thresholds feed the
severity, so re-deriving never needs the raw events or the scoring rules.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from .config import DetectionSettings
from .models import Alert, DetectionResult, EventRisk, Summary, TopRiskEntity, TrendPoint
from .scoring import parse_timestamps, risk_level

logger = logging.getLogger("sentinel.triage")

ALERT_TITLES: Dict[str, str] = {
    "high": "Potential Identity Theft Attempt",
    "medium": "Suspicious Login Behavior",
    "low": "Low Risk Activity",
}
FALLBACK_DESCRIPTION = "Composite anomaly score exceeded threshold"

SUMMARY_TOP_N = 8
LIVE_TOP_N = 20
DAILY_TREND_DAYS = 7
UNKNOWN_DATE = "Unknown"


def round_half_up(value: float, digits: int = 1) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def relevel(event_risk: Sequence[EventRisk], settings: DetectionSettings) -> List[EventRisk]:
    return [r.with_level(risk_level(r.score, settings)) for r in event_risk]


def build_alerts(event_risk: Sequence[EventRisk]) -> List[Alert]:
    """One alert per event, ranked by descending score (stable on ties)."""
    ranked = sorted(event_risk, key=lambda r: -r.score)
    return [
        Alert(
            id=f"ALT-{rank:04d}",
            severity=r.level,
            user_id=r.user_id,
            title=ALERT_TITLES[r.level],
            description=r.reasons[0] if r.reasons else FALLBACK_DESCRIPTION,
            timestamp=r.timestamp,
            score=r.score,
        )
        for rank, r in enumerate(ranked, start=1)
    ]


def build_summary(event_risk: Sequence[EventRisk], alerts: Sequence[Alert]) -> Summary:
    severities = pd.Series([a.severity for a in alerts], dtype="object")
    counts = severities.value_counts()
    scores = pd.Series([r.score for r in event_risk], dtype=float)
    return Summary(
        total_events=len(event_risk),
        total_users=len({r.user_id for r in event_risk}),
        anomaly_count=len(alerts),
        high_risk_count=int(counts.get("high", 0)),
        medium_risk_count=int(counts.get("medium", 0)),
        low_risk_count=int(counts.get("low", 0)),
        average_risk_score=round_half_up(float(scores.mean())) if len(scores) else 0.0,
    )


def hourly_risk_trend(event_risk: Sequence[EventRisk]) -> List[TrendPoint]:
    """Mean score per UTC hour of day; always 24 buckets, empty ones are 0."""
    means = pd.Series(dtype=float)
    if event_risk:
        stamps = parse_timestamps([r.timestamp for r in event_risk])
        hours = np.where(stamps.isna(), 0, np.nan_to_num(np.asarray(stamps.hour, dtype=float))).astype(int)
        frame = pd.DataFrame({"hour": hours, "score": [r.score for r in event_risk]})
        means = frame.groupby("hour")["score"].mean()
    return [
        TrendPoint(f"{hour:02d}:00", round_half_up(float(means[hour])) if hour in means.index else 0.0)
        for hour in range(24)
    ]


def daily_alert_trend(alerts: Sequence[Alert], days: int = DAILY_TREND_DAYS) -> List[TrendPoint]:
    """Alert count per calendar date; populated dates only, last `days` of them."""
    if not alerts:
        return []
    stamps = parse_timestamps([a.timestamp for a in alerts])
    labels = pd.Series([UNKNOWN_DATE if pd.isna(ts) else ts.strftime("%Y-%m-%d") for ts in stamps])
    counts = labels.value_counts().sort_index().tail(days)
    return [TrendPoint(str(label), int(count)) for label, count in counts.items()]


def top_risk_entities(
    event_risk: Sequence[EventRisk],
    alerts: Sequence[Alert],
    top_n: int = SUMMARY_TOP_N,
) -> List[TopRiskEntity]:
    """Subjects ranked by max score.

    Ties keep first appearance in `event_risk`, which is grouped by subject in
    chronological order, not raw input order. Full runs and re-derivations
    share that order, so both rank ties identically.
    """
    max_scores: Dict[str, int] = {}
    for r in event_risk:
        max_scores[r.user_id] = max(max_scores.get(r.user_id, 0), r.score)
    alert_counts: Dict[str, int] = {}
    for a in alerts:
        alert_counts[a.user_id] = alert_counts.get(a.user_id, 0) + 1

    entities = [TopRiskEntity(user_id, score, alert_counts.get(user_id, 0)) for user_id, score in max_scores.items()]
    entities.sort(key=lambda e: -e.max_score)
    return entities[:top_n]


def derive_result(
    event_risk: Sequence[EventRisk],
    settings: DetectionSettings,
    top_n: int = SUMMARY_TOP_N,
) -> DetectionResult:
    """Build the full bundle from raw per-event scores and the current thresholds."""
    leveled = relevel(event_risk, settings)
    alerts = build_alerts(leveled)
    summary = build_summary(leveled, alerts)
    logger.info(
        "Derived %d alerts (high=%d, medium=%d, low=%d) at warning=%s critical=%s",
        len(alerts), summary.high_risk_count, summary.medium_risk_count, summary.low_risk_count,
        settings.warning_threshold, settings.critical_threshold,
    )
    return DetectionResult(
        event_risk=leveled,
        alerts=alerts,
        summary=summary,
        hourly_risk_trend=hourly_risk_trend(leveled),
        daily_alert_trend=daily_alert_trend(alerts),
        top_risk_entities=top_risk_entities(leveled, alerts, top_n),
    )


def rederive(result: DetectionResult, settings: DetectionSettings, top_n: int = LIVE_TOP_N) -> DetectionResult:
    """Re-level a stored bundle under new thresholds without rescoring."""
    return derive_result(result.event_risk, settings, top_n)
