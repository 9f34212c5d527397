from typing import List

import pytest

from sentinel_pipeline.models import CanonicalEvent


def make_events(rows) -> List[CanonicalEvent]:
    """rows: iterable of dicts with CanonicalEvent fields (row_id assigned here)."""
    return [CanonicalEvent(row_id=i, **row) for i, row in enumerate(rows, start=1)]


@pytest.fixture
def login_csv(tmp_path):
    text = (
        "username,login_time,latitude,longitude,device,source_ip,status,city\n"
        "alice,2026-02-25 14:00:00,40.7128,-74.006,laptop,10.0.0.1,success,\"New York, NY\"\n"
        "alice,2026-02-25 14:15:00,35.6762,139.6503,laptop,10.0.0.1,success,\"Tokyo, JP\"\n"
        "bob,2026-02-25 09:00:00,51.5074,-0.1278,desktop,10.0.0.2,success,London\n"
        "bob,2026-02-25 09:30:00,51.5074,-0.1278,desktop,10.0.0.2,failed,London\n"
        "carol,2026-02-26 03:00:00,37.7749,-122.4194,phone,10.0.0.3,success,\"Springfield, IL\"\n"
    )
    path = tmp_path / "logins.csv"
    path.write_text(text, encoding="utf-8")
    return path
