"""
Per-event risk scoring.
========================
Every event starts at a baseline of 5 points; rule families add points and
the total is clamped to [0, 100].

Rule families
-------------
  static       off-hours, missing device, invalid geolocation, failed outcome
  sequential   rapid device switch, impossible travel, fast IP shift
               (always against the same subject's previous event)
  burst        subject's event count inside the trailing burst window
  behavioral   indicator columns preserved from the source (flags, counts,
               consistency scores), some judged by dataset-wide z-scores

Feature gating: a family whose underlying field is never populated in the
dataset is switched off, so absent data never looks like an anomaly.

Ordering: events are stably sorted by parsed timestamp (unparseable ones
last), then grouped per subject in first-appearance order. Burst counts use
binary search over each subject's sorted instants.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

import numpy as np
import pandas as pd

from .aliases import BEHAVIORAL_ALIASES
from .config import DetectionSettings
from .models import CanonicalEvent, EventRisk
from .schema import extra_key, parse_number

logger = logging.getLogger("sentinel.scoring")

BASELINE_SCORE = 5
MIN_SCORE, MAX_SCORE = 0, 100

EARTH_RADIUS_KM = 6371.0
MIN_TRAVEL_DISTANCE_KM = 350.0
OFF_HOURS_LAST_HOUR = 4
IP_SHIFT_WINDOW_MINUTES = 15
UNPARSEABLE_HOUR = 12
ZSCORE_CUTOFF = 1.5

_NS_PER_MINUTE = 60 * 1_000_000_000
_SORT_LAST = np.iinfo(np.int64).max

# z-score baselines are kept for these behavioral fields
BASELINE_FIELDS = (
    "failed_logins",
    "incident_reports",
    "password_resets",
    "failed_transactions",
    "access_frequency",
)

_BEHAVIORAL_KEYS: Dict[str, Tuple[str, ...]] = {
    name: tuple(extra_key(a) for a in aliases) for name, aliases in BEHAVIORAL_ALIASES.items()
}

Signal = Tuple[int, str]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def risk_level(score: float, settings: DetectionSettings) -> str:
    """Severity from score and thresholds alone."""
    if score >= settings.critical_threshold:
        return "high"
    if score >= settings.warning_threshold:
        return "medium"
    return "low"


def haversine_km(lat1, lon1, lat2, lon2):
    """Great-circle distance in km; accepts scalars or numpy arrays."""
    lat1, lon1, lat2, lon2 = (np.radians(v) for v in (lat1, lon1, lat2, lon2))
    with np.errstate(invalid="ignore"):
        a = (
            np.sin((lat2 - lat1) / 2) ** 2
            + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
        )
        return 2 * EARTH_RADIUS_KM * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def parse_timestamps(values: Sequence[str]) -> pd.DatetimeIndex:
    """UTC instants; naive strings are read as UTC, junk becomes NaT."""
    return pd.DatetimeIndex(
        pd.to_datetime(pd.Series(list(values), dtype="object"), errors="coerce", utc=True, format="mixed")
    )


def _fmt(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def behavioral_value(event: CanonicalEvent, name: str) -> float:
    """First matching alias wins; non-numeric values read as 0."""
    for key in _BEHAVIORAL_KEYS[name]:
        if key in event.extra:
            return parse_number(event.extra[key])
    return 0.0


def has_behavioral_field(event: CanonicalEvent, name: str) -> bool:
    return any(key in event.extra for key in _BEHAVIORAL_KEYS[name])


@dataclass(frozen=True)
class Baseline:
    mean: float
    std: float

    def zscore(self, value: float) -> float:
        return (value - self.mean) / self.std


def compute_baselines(events: Sequence[CanonicalEvent]) -> Dict[str, Baseline]:
    """Population mean/std per behavioral field over every event (zeros included)."""
    baselines: Dict[str, Baseline] = {}
    for name in BASELINE_FIELDS:
        values = pd.Series([behavioral_value(e, name) for e in events], dtype=float)
        if values.empty:
            baselines[name] = Baseline(0.0, 0.0)
            continue
        baselines[name] = Baseline(float(values.mean()), float(values.std(ddof=0)))
    return baselines


# ---------------------------------------------------------------------------
# Dataset context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FeatureGates:
    geo: bool
    devices: bool
    timestamps: bool
    behavioral: bool

    @classmethod
    def detect(cls, events: Sequence[CanonicalEvent], valid_ts: np.ndarray) -> "FeatureGates":
        return cls(
            geo=any(e.lat != 0 or e.long != 0 for e in events),
            devices=any(e.device_id not in ("unknown", "") for e in events),
            timestamps=bool(valid_ts.any()),
            # probing the first row is enough: every row shares the source's columns
            behavioral=bool(events and events[0].extra),
        )


@dataclass
class _Context:
    settings: DetectionSettings
    gates: FeatureGates
    baselines: Dict[str, Baseline]
    instants: np.ndarray   # int64 ns since epoch, meaningless where ~valid
    valid: np.ndarray
    hours: np.ndarray

    def minutes_between(self, earlier: int, later: int) -> float:
        if not (self.valid[earlier] and self.valid[later]):
            return math.inf
        return (int(self.instants[later]) - int(self.instants[earlier])) / _NS_PER_MINUTE


# ---------------------------------------------------------------------------
# Rule families
# ---------------------------------------------------------------------------

def _static_signals(event: CanonicalEvent, hour: int, ctx: _Context) -> Iterator[Signal]:
    gates = ctx.gates
    if gates.timestamps and hour <= OFF_HOURS_LAST_HOUR:
        yield 10, "Off-hours login activity"

    if gates.devices and not event.device_id.strip():
        yield 20, "Missing device fingerprint"

    if gates.geo:
        lat_invalid = math.isnan(event.lat) or not -90 <= event.lat <= 90
        lon_invalid = math.isnan(event.long) or not -180 <= event.long <= 180
        if lat_invalid or lon_invalid:
            yield 35, "Invalid or spoofed geolocation coordinates"

    if (event.login_result or "").lower() == "failed":
        yield 18, "Failed authentication attempt"


def _sequential_signals(
    current: CanonicalEvent,
    previous: CanonicalEvent,
    minutes_apart: float,
    ctx: _Context,
) -> Iterator[Signal]:
    gates, settings = ctx.gates, ctx.settings

    if (
        gates.devices
        and previous.device_id
        and current.device_id
        and previous.device_id != current.device_id
        and minutes_apart <= settings.rapid_device_switch_minutes
    ):
        yield 22, "Rapid device switching detected"

    coords = (previous.lat, previous.long, current.lat, current.long)
    if gates.geo and not any(math.isnan(c) for c in coords) and 0 < minutes_apart < math.inf:
        distance = float(haversine_km(*coords))
        speed = distance / (minutes_apart / 60)
        if distance > MIN_TRAVEL_DISTANCE_KM and speed > settings.impossible_travel_speed_kmh:
            yield 30, f"Impossible travel pattern ({int(math.floor(speed + 0.5))} km/h)"

    if (
        previous.ip_address
        and current.ip_address
        and previous.ip_address != current.ip_address
        and minutes_apart <= IP_SHIFT_WINDOW_MINUTES
    ):
        yield 12, "Fast IP reputation shift detected"


def _zscore_or_threshold(
    value: float,
    baseline: Baseline,
    fallback: float,
    points: int,
    outlier_reason: str,
    threshold_reason: str,
) -> Iterator[Signal]:
    if baseline.std > 0:
        if baseline.zscore(value) > ZSCORE_CUTOFF:
            yield points, outlier_reason.format(_fmt(value))
    elif value >= fallback:
        yield points, threshold_reason.format(_fmt(value))


def _behavioral_signals(event: CanonicalEvent, ctx: _Context) -> Iterator[Signal]:
    if behavioral_value(event, "anomalous_activity") == 1:
        yield 15, "Flagged as anomalous activity in dataset"

    if behavioral_value(event, "access_sensitive") == 1:
        yield 10, "Accessed sensitive/restricted data"

    if has_behavioral_field(event, "mfa_enabled") and behavioral_value(event, "mfa_enabled") == 0:
        yield 12, "Multi-factor authentication disabled"

    failed_logins = behavioral_value(event, "failed_logins")
    if failed_logins >= 5:
        yield 18, f"High failed login attempts ({_fmt(failed_logins)})"
    elif failed_logins >= 3:
        yield 10, f"Elevated failed login attempts ({_fmt(failed_logins)})"

    yield from _zscore_or_threshold(
        behavioral_value(event, "incident_reports"), ctx.baselines["incident_reports"], 4, 14,
        "Abnormal incident report count ({})", "High incident reports ({})",
    )
    yield from _zscore_or_threshold(
        behavioral_value(event, "password_resets"), ctx.baselines["password_resets"], 4, 12,
        "Frequent password resets ({})", "Frequent password resets ({})",
    )
    yield from _zscore_or_threshold(
        behavioral_value(event, "failed_transactions"), ctx.baselines["failed_transactions"], 5, 12,
        "Abnormal failed transactions ({})", "High failed transactions ({})",
    )

    if has_behavioral_field(event, "device_consistency") and behavioral_value(event, "device_consistency") == 0:
        yield 10, "Inconsistent device usage pattern"

    if has_behavioral_field(event, "location_consistency") and behavioral_value(event, "location_consistency") == 0:
        yield 10, "Inconsistent access location pattern"

    if has_behavioral_field(event, "login_consistency"):
        login_consistency = behavioral_value(event, "login_consistency")
        if login_consistency <= 2:
            yield 8, f"Low login time consistency ({_fmt(login_consistency)}/10)"


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------

def group_by_subject(order: Sequence[int], events: Sequence[CanonicalEvent]) -> Dict[str, List[int]]:
    """Per-subject index lists, subjects in first-appearance order."""
    groups: Dict[str, List[int]] = {}
    for idx in order:
        groups.setdefault(events[idx].user_id, []).append(idx)
    return groups


def score_events(events: Sequence[CanonicalEvent], settings: DetectionSettings) -> List[EventRisk]:
    """Score every event; output is grouped by subject, chronological within."""
    events = list(events)
    if not events:
        return []

    stamps = parse_timestamps([e.timestamp for e in events])
    valid = ~np.asarray(stamps.isna())
    instants = stamps.tz_convert(None).to_numpy(dtype="datetime64[ns]").astype(np.int64)
    hours = np.where(valid, np.nan_to_num(np.asarray(stamps.hour, dtype=float)), UNPARSEABLE_HOUR).astype(int)

    gates = FeatureGates.detect(events, valid)
    ctx = _Context(
        settings=settings,
        gates=gates,
        baselines=compute_baselines(events) if gates.behavioral else {},
        instants=instants,
        valid=valid,
        hours=hours,
    )

    order = np.argsort(np.where(valid, instants, _SORT_LAST), kind="stable")
    groups = group_by_subject(order.tolist(), events)
    logger.info(
        "Scoring %d events for %d subjects (geo=%s, devices=%s, timestamps=%s, behavioral=%s)",
        len(events), len(groups), gates.geo, gates.devices, gates.timestamps, gates.behavioral,
    )

    burst_window_ns = int(round(settings.burst_window_minutes * _NS_PER_MINUTE))
    results: List[EventRisk] = []

    for user_id, members in groups.items():
        # valid instants form a sorted prefix of each group
        subject_times = np.array([instants[i] for i in members if valid[i]], dtype=np.int64)

        for pos, idx in enumerate(members):
            current = events[idx]
            signals: List[Signal] = list(_static_signals(current, int(hours[idx]), ctx))

            if pos > 0 and gates.timestamps:
                prev_idx = members[pos - 1]
                minutes_apart = ctx.minutes_between(prev_idx, idx)
                signals.extend(_sequential_signals(current, events[prev_idx], minutes_apart, ctx))

            if gates.timestamps and valid[idx]:
                t = instants[idx]
                recent = (
                    np.searchsorted(subject_times, t, side="right")
                    - np.searchsorted(subject_times, t - burst_window_ns, side="left")
                )
                if recent >= settings.burst_event_count:
                    signals.append((18, "Unusual login burst frequency"))

            if gates.behavioral:
                signals.extend(_behavioral_signals(current, ctx))

            score = BASELINE_SCORE + sum(points for points, _ in signals)
            score = int(min(MAX_SCORE, max(MIN_SCORE, score)))
            results.append(
                EventRisk(
                    row_id=current.row_id,
                    user_id=user_id,
                    timestamp=current.timestamp,
                    score=score,
                    level=risk_level(score, settings),
                    reasons=[reason for _, reason in signals],
                )
            )

    logger.info("Scored %d events", len(results))
    return results
