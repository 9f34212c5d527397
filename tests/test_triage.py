from sentinel_pipeline.config import DEFAULT_SETTINGS
from sentinel_pipeline.models import EventRisk
from sentinel_pipeline.pipeline import SentinelPipeline
from sentinel_pipeline.sample import generate_sample_dataset
from sentinel_pipeline.triage import (
    FALLBACK_DESCRIPTION,
    SUMMARY_TOP_N,
    build_alerts,
    build_summary,
    daily_alert_trend,
    derive_result,
    hourly_risk_trend,
    rederive,
    round_half_up,
    top_risk_entities,
)


def _risk(row_id, user, ts, score, reasons=()):
    return EventRisk(row_id=row_id, user_id=user, timestamp=ts, score=score, level="low", reasons=list(reasons))


def test_alerts_ranked_by_score_with_stable_ties():
    risks = [
        _risk(1, "a", "2026-02-25 10:00:00", 30, ["Off-hours login activity"]),
        _risk(2, "b", "2026-02-25 11:00:00", 90, ["Impossible travel pattern (9000 km/h)"]),
        _risk(3, "c", "2026-02-25 12:00:00", 30),
    ]
    alerts = build_alerts(derive_result(risks, DEFAULT_SETTINGS).event_risk)

    assert [a.id for a in alerts] == ["ALT-0001", "ALT-0002", "ALT-0003"]
    assert [a.user_id for a in alerts] == ["b", "a", "c"]
    assert alerts[0].severity == "high"
    assert alerts[0].title == "Potential Identity Theft Attempt"
    assert alerts[2].description == FALLBACK_DESCRIPTION
    assert alerts[2].title == "Low Risk Activity"


def test_summary_counts_and_average():
    risks = derive_result([
        _risk(1, "a", "2026-02-25 10:00:00", 85),
        _risk(2, "a", "2026-02-25 10:05:00", 60),
        _risk(3, "b", "2026-02-25 10:10:00", 5),
        _risk(4, "c", "2026-02-25 10:15:00", 6),
    ], DEFAULT_SETTINGS).event_risk
    summary = build_summary(risks, build_alerts(risks))

    assert summary.total_events == 4
    assert summary.total_users == 3
    assert summary.anomaly_count == 4
    assert (summary.high_risk_count, summary.medium_risk_count, summary.low_risk_count) == (1, 1, 2)
    # 156 / 4 = 39.0
    assert summary.average_risk_score == 39.0


def test_round_half_up():
    assert round_half_up(2.25) == 2.3
    assert round_half_up(2.35) == 2.4
    assert round_half_up(7.0) == 7.0


def test_hourly_trend_always_has_24_buckets():
    risks = [_risk(i, "a", f"2026-02-25 14:{i:02d}:00", 10 * i) for i in range(1, 4)]
    trend = hourly_risk_trend(risks)

    assert len(trend) == 24
    assert trend[0].label == "00:00" and trend[23].label == "23:00"
    assert trend[14].value == 20.0
    assert sum(p.value for p in trend) == 20.0


def test_hourly_trend_puts_unparseable_in_first_bucket():
    trend = hourly_risk_trend([_risk(1, "a", "garbage", 40)])
    assert trend[0].value == 40.0
    assert len(trend) == 24


def test_daily_trend_keeps_last_seven_dates():
    risks = [_risk(d, "a", f"2026-03-{d:02d} 10:00:00", 10) for d in range(1, 10)]
    risks.append(_risk(10, "a", "garbage", 10))
    trend = daily_alert_trend(build_alerts(risks))

    assert len(trend) == 7
    # "Unknown" sorts after the ISO dates
    assert trend[-1].label == "Unknown"
    assert trend[0].label == "2026-03-04"
    assert all(p.value == 1 for p in trend)


def test_top_entities_ties_keep_first_appearance():
    risks = [
        _risk(1, "zed", "2026-02-25 10:00:00", 50),
        _risk(2, "amy", "2026-02-25 10:00:00", 50),
        _risk(3, "amy", "2026-02-25 10:05:00", 20),
        _risk(4, "bo", "2026-02-25 10:00:00", 70),
    ]
    top = top_risk_entities(risks, build_alerts(risks), top_n=2)

    assert [(e.user_id, e.max_score) for e in top] == [("bo", 70), ("zed", 50)]
    assert top[0].alert_count == 1


def test_threshold_round_trip_reproduces_bundle():
    result = SentinelPipeline().detect(generate_sample_dataset(size=200))
    loose = DEFAULT_SETTINGS.with_thresholds(30, 60)

    shifted = rederive(result, loose, top_n=SUMMARY_TOP_N)
    restored = rederive(shifted, DEFAULT_SETTINGS, top_n=SUMMARY_TOP_N)

    assert shifted.summary != result.summary
    assert restored == result


def test_rederive_matches_full_run():
    events = generate_sample_dataset(size=200)
    settings = DEFAULT_SETTINGS.with_thresholds(30, 60)
    pipe = SentinelPipeline()

    full = pipe.detect(events, settings)
    live = rederive(pipe.detect(events), settings, top_n=SUMMARY_TOP_N)

    assert live == full
