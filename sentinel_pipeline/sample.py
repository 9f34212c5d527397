"""
Sample login dataset.
======================
Reproducible mix of normal daytime activity and injected suspicious patterns:

  1. impossible travel      alice_j: New York then Tokyo 15 minutes apart
  2. off-hours burst        eve_admin: 6 logins in 10 minutes at 03:10,
                            alternating devices and IPs, first 3 failed
  3. rapid device switching bob_smith: 4 devices in 15 minutes
  4. invalid geolocation    frank_hr: 02:30 failure at (999, -999), no device
  5. failed-login storm     carol_dev: 4 failures then a success

Used by the CLI (--sample) and by tests that need a realistic dataset.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Tuple

import numpy as np

from .models import CanonicalEvent

USERS = ("alice_j", "bob_smith", "carol_dev", "dave_ops", "eve_admin", "frank_hr", "grace_fin", "henry_eng")
DEVICES = ("Chrome-Win11", "Safari-MacOS", "Firefox-Ubuntu", "Edge-Win10", "Mobile-iOS", "Mobile-Android")
IPS = ("192.168.1.10", "10.0.0.42", "172.16.5.3", "203.0.113.7", "198.51.100.55", "45.33.12.88", "91.198.174.2")

# (lat, long, city)
LOCATIONS: Tuple[Tuple[float, float, str], ...] = (
    (40.7128, -74.006, "New York"),
    (51.5074, -0.1278, "London"),
    (35.6762, 139.6503, "Tokyo"),
    (37.7749, -122.4194, "San Francisco"),
    (48.8566, 2.3522, "Paris"),
    (-33.8688, 151.2093, "Sydney"),
    (55.7558, 37.6173, "Moscow"),
    (19.076, 72.8777, "Mumbai"),
)

BASE_DATE = datetime(2026, 2, 25, 8, 0, 0)


def _stamp(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def _at(day: int, hour: int, minute: int) -> datetime:
    return (BASE_DATE + timedelta(days=day)).replace(hour=hour, minute=minute)


def generate_sample_dataset(size: int = 80, seed: int = 0) -> List[CanonicalEvent]:
    rng = np.random.default_rng(seed)

    def jitter(value: float, spread: float) -> float:
        return round(value + (rng.random() - 0.5) * spread, 4)

    def event(user: str, moment: datetime, lat: float, long: float, device: str, ip: str, result: str) -> dict:
        return dict(user_id=user, timestamp=_stamp(moment), lat=lat, long=long,
                    device_id=device, ip_address=ip, login_result=result)

    rows: List[dict] = []

    for user in USERS:
        home_lat, home_long, _ = LOCATIONS[rng.integers(len(LOCATIONS))]
        device = DEVICES[rng.integers(len(DEVICES))]
        ip = IPS[rng.integers(len(IPS))]
        logins_per_day = 2 + int(rng.integers(3))
        for day in range(3):
            for _ in range(logins_per_day):
                moment = _at(day, 8 + int(rng.integers(10)), int(rng.integers(60)))
                rows.append(event(user, moment, jitter(home_lat, 0.05), jitter(home_long, 0.05), device, ip, "success"))

    travel = _at(1, 14, 0)
    rows.append(event("alice_j", travel, 40.7128, -74.006, "Chrome-Win11", "192.168.1.10", "success"))
    rows.append(event("alice_j", travel + timedelta(minutes=15), 35.6762, 139.6503,
                      "Mobile-Android", "91.198.174.2", "success"))

    burst = _at(2, 3, 10)
    for i in range(6):
        rows.append(event(
            "eve_admin", burst + timedelta(minutes=2 * i),
            jitter(55.7558, 0.01), jitter(37.6173, 0.01),
            "Firefox-Ubuntu" if i % 2 == 0 else "Mobile-iOS",
            "10.0.0.42" if i % 2 == 0 else "45.33.12.88",
            "failed" if i < 3 else "success",
        ))

    switch = _at(1, 11, 0)
    for i in range(4):
        rows.append(event("bob_smith", switch + timedelta(minutes=5 * i),
                          jitter(51.5074, 0.02), jitter(-0.1278, 0.02), DEVICES[i], IPS[i], "success"))

    rows.append(event("frank_hr", _at(2, 2, 30), 999.0, -999.0, "", "203.0.113.7", "failed"))

    brute = _at(2, 16, 45)
    for i in range(5):
        rows.append(event("carol_dev", brute + timedelta(minutes=i),
                          jitter(37.7749, 0.01), jitter(-122.4194, 0.01), "Tor-Browser",
                          f"45.33.{10 + i}.{100 + i}", "failed" if i < 4 else "success"))

    rows.sort(key=lambda r: r["timestamp"])
    return [CanonicalEvent(row_id=i, **row) for i, row in enumerate(rows[:size], start=1)]
