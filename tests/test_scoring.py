import math

from conftest import make_events

from sentinel_pipeline.config import DEFAULT_SETTINGS, DetectionSettings
from sentinel_pipeline.scoring import (
    BASELINE_SCORE,
    compute_baselines,
    haversine_km,
    risk_level,
    score_events,
)


def _login(user, ts, lat=0.0, long=0.0, device="laptop", **kw):
    return dict(user_id=user, timestamp=ts, lat=lat, long=long, device_id=device, **kw)


def _by_row(risks):
    return {r.row_id: r for r in risks}


def test_quiet_event_scores_baseline():
    risks = score_events(make_events([_login("alice", "2026-02-25 12:00:00")]), DEFAULT_SETTINGS)

    assert risks[0].score == BASELINE_SCORE
    assert risks[0].reasons == []
    assert risks[0].level == "low"


def test_score_is_clamped_to_100():
    extra = {
        "anomalousactivity": "1",
        "accesstosensitivedata": "1",
        "mfaenabled": "0",
        "failedloginattempts": "7",
        "deviceconsistency": "0",
        "accesslocationconsistency": "0",
        "loginconsistency": "1",
    }
    events = make_events([
        _login("mallory", "2026-02-25 02:00:00", lat=999.0, long=-999.0, login_result="failed", extra=extra),
    ])
    risk = score_events(events, DEFAULT_SETTINGS)[0]

    assert risk.score == 100
    assert risk.level == "high"
    assert "Invalid or spoofed geolocation coordinates" in risk.reasons
    assert "High failed login attempts (7)" in risk.reasons
    assert "Low login time consistency (1/10)" in risk.reasons


def test_impossible_travel_nyc_to_tokyo():
    events = make_events([
        _login("alice", "2026-02-25 14:00:00", 40.7128, -74.006),
        _login("alice", "2026-02-25 14:15:00", 35.6762, 139.6503),
    ])
    first, second = score_events(events, DEFAULT_SETTINGS)

    assert first.score == BASELINE_SCORE
    assert second.score == BASELINE_SCORE + 30
    assert len(second.reasons) == 1
    assert second.reasons[0].startswith("Impossible travel pattern (")
    assert second.reasons[0].endswith(" km/h)")


def test_haversine_nyc_tokyo_distance():
    assert math.isclose(float(haversine_km(40.7128, -74.006, 35.6762, 139.6503)), 10850, rel_tol=0.01)


def test_burst_flags_from_fourth_event():
    events = make_events([
        _login("eve", f"2026-02-25 10:{2 * i:02d}:00") for i in range(6)
    ])
    settings = DetectionSettings(burst_window_minutes=30, burst_event_count=4)
    risks = score_events(events, settings)

    flagged = [r.row_id for r in risks if "Unusual login burst frequency" in r.reasons]
    assert flagged == [4, 5, 6]
    assert all(r.score == BASELINE_SCORE + 18 for r in risks if r.row_id in flagged)


def test_zero_geo_dataset_never_flags_geolocation():
    events = make_events([
        _login("bob", "2026-02-25 09:00:00"),
        _login("bob", "2026-02-25 09:05:00"),
        _login("carol", "2026-02-25 11:00:00", lat=0.0, long=0.0, login_result="failed"),
    ])
    risks = score_events(events, DEFAULT_SETTINGS)

    for r in risks:
        assert "Invalid or spoofed geolocation coordinates" not in r.reasons
        assert not any(reason.startswith("Impossible travel") for reason in r.reasons)


def test_device_switch_and_ip_shift():
    events = make_events([
        _login("bob", "2026-02-25 11:00:00", device="laptop", ip_address="10.0.0.1"),
        _login("bob", "2026-02-25 11:05:00", device="phone", ip_address="10.0.0.2"),
    ])
    second = _by_row(score_events(events, DEFAULT_SETTINGS))[2]

    assert second.reasons == ["Rapid device switching detected", "Fast IP reputation shift detected"]
    assert second.score == BASELINE_SCORE + 22 + 12


def test_device_rules_gated_when_no_device_data():
    events = make_events([
        _login("bob", "2026-02-25 11:00:00", device="unknown"),
        _login("bob", "2026-02-25 11:05:00", device="unknown"),
    ])
    assert all(r.score == BASELINE_SCORE for r in score_events(events, DEFAULT_SETTINGS))


def test_off_hours_and_unparseable_timestamps():
    events = make_events([
        _login("dave", "2026-02-25 03:30:00"),
        _login("dave", "not a date"),
        _login("dave", "2026-02-25 01:00:00"),
    ])
    risks = score_events(events, DEFAULT_SETTINGS)

    # chronological within the subject, unparseable last
    assert [r.row_id for r in risks] == [3, 1, 2]
    assert "Off-hours login activity" in risks[0].reasons
    assert risks[2].reasons == []


def test_output_grouped_by_subject_in_first_appearance_order():
    events = make_events([
        _login("bob", "2026-02-25 10:30:00"),
        _login("alice", "2026-02-25 10:00:00"),
        _login("bob", "2026-02-25 09:00:00"),
        _login("alice", "2026-02-25 11:00:00"),
    ])
    risks = score_events(events, DEFAULT_SETTINGS)

    assert [(r.user_id, r.row_id) for r in risks] == [("bob", 3), ("bob", 1), ("alice", 2), ("alice", 4)]


def test_behavioral_zscore_outlier():
    rows = [
        _login(f"u{i}", "2026-02-25 12:00:00", extra={"incidentreports": "0"}) for i in range(9)
    ] + [_login("u9", "2026-02-25 12:00:00", extra={"incidentreports": "6"})]
    risks = _by_row(score_events(make_events(rows), DEFAULT_SETTINGS))

    assert risks[10].reasons == ["Abnormal incident report count (6)"]
    assert risks[1].reasons == []


def test_behavioral_fallback_threshold_when_no_variance():
    events = make_events([
        _login("u1", "2026-02-25 12:00:00", extra={"failedtransactions": "5"}),
        _login("u2", "2026-02-25 12:00:00", extra={"failedtransactions": "5"}),
    ])
    for r in score_events(events, DEFAULT_SETTINGS):
        assert r.reasons == ["High failed transactions (5)"]


def test_compute_baselines_population_std():
    events = make_events([
        _login("u1", "2026-02-25 12:00:00", extra={"passwordresets": "2"}),
        _login("u2", "2026-02-25 12:00:00", extra={"passwordresets": "4"}),
    ])
    baseline = compute_baselines(events)["password_resets"]
    assert baseline.mean == 3.0
    assert baseline.std == 1.0


def test_risk_level_boundaries():
    assert risk_level(80, DEFAULT_SETTINGS) == "high"
    assert risk_level(79, DEFAULT_SETTINGS) == "medium"
    assert risk_level(55, DEFAULT_SETTINGS) == "medium"
    assert risk_level(54, DEFAULT_SETTINGS) == "low"


def test_empty_input_scores_nothing():
    assert score_events([], DEFAULT_SETTINGS) == []


def test_same_instant_travel_is_not_flagged():
    events = make_events([
        _login("alice", "2026-02-25 14:00:00", 40.7128, -74.006),
        _login("alice", "2026-02-25 14:00:00", 35.6762, 139.6503),
    ])
    risks = score_events(events, DEFAULT_SETTINGS)

    assert [(r.row_id, r.reasons) for r in risks] == [(1, []), (2, [])]


def test_device_switch_outside_window_is_not_flagged():
    events = make_events([
        _login("bob", "2026-02-25 11:00:00", device="laptop"),
        _login("bob", "2026-02-25 11:30:00", device="phone"),
    ])
    assert all(r.reasons == [] for r in score_events(events, DEFAULT_SETTINGS))


def test_ip_change_after_fifteen_minutes_is_not_flagged():
    events = make_events([
        _login("bob", "2026-02-25 11:00:00", ip_address="10.0.0.1"),
        _login("bob", "2026-02-25 11:20:00", ip_address="10.0.0.2"),
    ])
    assert all(r.reasons == [] for r in score_events(events, DEFAULT_SETTINGS))


def test_behavioral_rules_follow_first_event_columns():
    events = make_events([
        _login("u1", "2026-02-25 12:00:00"),
        _login("u2", "2026-02-25 12:00:00", extra={"failedloginattempts": "7", "mfaenabled": "0"}),
    ])
    assert all(r.score == BASELINE_SCORE for r in score_events(events, DEFAULT_SETTINGS))


def test_mfa_disabled_alone():
    events = make_events([_login("u1", "2026-02-25 12:00:00", extra={"mfaenabled": "0"})])
    risk = score_events(events, DEFAULT_SETTINGS)[0]

    assert risk.reasons == ["Multi-factor authentication disabled"]
    assert risk.score == BASELINE_SCORE + 12
