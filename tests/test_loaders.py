import json

import pytest

from sentinel_pipeline.loaders import (
    FormatError,
    load_events,
    load_events_file,
    parse_csv_text,
    parse_json_text,
    parse_records,
    parse_text,
    split_csv_line,
)
from sentinel_pipeline.schema import SchemaError


def test_split_csv_line_keeps_quoted_commas():
    assert split_csv_line('alice, "Springfield, IL" ,"say ""hi"""') == ["alice", "Springfield, IL", 'say "hi"']


def test_csv_preserves_quoted_field(login_csv):
    parsed = load_events_file(login_csv)

    assert len(parsed.events) == 5
    assert parsed.headers[-1] == "city"
    carol = parsed.events[-1]
    assert carol.user_id == "carol"
    assert carol.extra["city"] == "Springfield, IL"
    assert parsed.events[0].ip_address == "10.0.0.1"
    assert parsed.events[3].login_result == "failed"


def test_csv_skips_blank_lines_and_pads_short_rows():
    text = "user,time,device\n\nalice,2026-02-25 10:00:00\n\n"
    parsed = parse_csv_text(text)

    assert len(parsed.events) == 1
    assert parsed.events[0].device_id == "unknown"
    assert parsed.events[0].row_id == 1


def test_csv_requires_data_row():
    with pytest.raises(FormatError, match="header and at least one data row"):
        parse_csv_text("user,time\n")


def test_csv_missing_timestamp_raises_schema_error():
    with pytest.raises(SchemaError) as excinfo:
        parse_csv_text("user,lat,lng\nalice,1,2\n")
    assert "timestamp" in excinfo.value.missing


def test_json_list_bearing_object():
    doc = {
        "records": [
            {"user": "alice", "time": "2026-02-25T10:00:00Z", "mfa": True, "score": 3.0},
            "not a record",
            {"user": "bob", "time": "2026-02-25T11:00:00Z", "mfa": False, "score": 2.5},
        ]
    }
    parsed = parse_records(doc)

    assert [e.user_id for e in parsed.events] == ["alice", "bob"]
    assert [e.row_id for e in parsed.events] == [1, 3]
    assert parsed.events[0].extra["mfa"] == "true"
    assert parsed.events[0].extra["score"] == "3"
    assert parsed.events[1].extra["score"] == "2.5"


def test_json_rejects_bad_shapes():
    with pytest.raises(FormatError):
        parse_json_text("{not json")
    with pytest.raises(FormatError):
        parse_json_text(json.dumps({"items": []}))
    with pytest.raises(FormatError):
        parse_json_text("[]")
    with pytest.raises(FormatError):
        parse_json_text('"just a string"')


def test_text_table_extraction():
    text = (
        "Quarterly Login Report\n"
        "User      Timestamp              Device     IP\n"
        "alice     2026-02-25 10:00:00    laptop     10.0.0.1\n"
        "page 2\n"
        "User      Timestamp              Device     IP\n"
        "bob       2026-02-25 11:00:00    phone      10.0.0.2\n"
    )
    parsed = parse_text(text)

    assert parsed.headers == ["User", "Timestamp", "Device", "IP"]
    assert [e.user_id for e in parsed.events] == ["alice", "bob"]
    assert parsed.events[1].device_id == "phone"


def test_text_embedded_json():
    text = 'Export follows: [{"user": "alice", "time": "2026-02-25 10:00:00"}] end of export'
    parsed = parse_text(text)
    assert parsed.events[0].user_id == "alice"


def test_text_without_table_fails():
    with pytest.raises(FormatError, match="Could not detect login event data"):
        parse_text("nothing to see here\njust prose")


def test_load_events_decodes_bytes_with_bom():
    parsed = load_events("\ufeffuser,time\nalice,2026-02-25 10:00:00\n".encode("utf-8"), "csv")
    assert parsed.mapping.mapped["user_id"] == "user"


def test_load_events_file_suffix_handling(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_events_file(tmp_path / "missing.csv")

    sheet = tmp_path / "logins.xlsx"
    sheet.write_bytes(b"binary")
    with pytest.raises(FormatError, match="Unsupported file type"):
        load_events_file(sheet)

    # explicit format overrides the suffix
    data = tmp_path / "export.dat"
    data.write_text('[{"user": "alice", "time": "2026-02-25 10:00:00"}]', encoding="utf-8")
    assert len(load_events_file(data, "json").events) == 1


def test_csv_drops_surplus_cells_and_unescapes_quotes():
    text = 'user,time,note\nalice,2026-02-25 10:00:00,"x""y",surplus\n'
    event = parse_csv_text(text).events[0]

    assert event.extra["note"] == 'x"y'
    assert "surplus" not in event.extra.values()


def test_csv_unterminated_quote_is_a_format_error():
    with pytest.raises(FormatError):
        parse_csv_text('user,time\nalice,"2026-02-25 10:00:00\n')


def test_text_with_comma_header_uses_csv():
    text = 'user,time,city\nalice,2026-02-25 10:00:00,"Springfield, IL"\n'
    parsed = parse_text(text)

    assert parsed.headers == ["user", "time", "city"]
    assert parsed.events[0].extra["city"] == "Springfield, IL"
