"""
Input format parsers.
======================
Turns raw login exports into canonical events. Three parsers converge on the
same schema mapper and row normalizer:

1. Delimited text (CSV)
   - First non-blank line is the header; blank lines are discarded
   - RFC4180-style quoting: "" inside a quoted field is a literal quote,
     commas inside quotes are literal

2. Structured records (JSON)
   - Root is a list of objects, or an object holding the list under
     "events", "data", "records" or "rows"
   - Headers come from the first record's keys; values are coerced to str

3. Loosely structured text (e.g. text extracted from a PDF report)
   - Tries CSV, then an embedded JSON array, then a best-effort table scan
     that picks the header line with the most alias hits

Usage
-----
    from sentinel_pipeline.loaders import load_events_file, parse_csv_text

    parsed = load_events_file("data/logins.csv")
    parsed.events, parsed.headers, parsed.mapping
"""
from __future__ import annotations

import json
import logging
import re
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import pandas as pd

from .aliases import all_column_aliases
from .models import CanonicalEvent
from .schema import SchemaError, SchemaMapping, auto_map_columns, normalize_row, normalize_rows, validate_mapping

logger = logging.getLogger("sentinel.loaders")

# Keys under which a JSON object may carry its record list, in priority order.
RECORD_LIST_KEYS = ("events", "data", "records", "rows")

SUFFIX_FORMATS = {
    ".csv": "csv",
    ".json": "json",
    ".txt": "text",
    ".text": "text",
}

_LINE_BREAK = re.compile(r"\r?\n")
_TABLE_SPLIT = re.compile(r"[\t|]+|\s{2,}")
_HEADER_JUNK = re.compile(r"[^a-z0-9_]")
_JSON_SPAN = re.compile(r"\[[\s\S]*\]")

# Only the first N non-blank lines are considered as a table header.
MAX_HEADER_SCAN_LINES = 20
MIN_HEADER_ALIAS_HITS = 2


class FormatError(ValueError):
    """Raised when raw input cannot be turned into rows at all."""


class ParsedDataset(NamedTuple):
    events: List[CanonicalEvent]
    headers: List[str]
    mapping: SchemaMapping


def _non_blank_lines(text: str) -> List[str]:
    return [line.strip() for line in _LINE_BREAK.split(text) if line.strip()]


# ---------------------------------------------------------------------------
# Delimited text
# ---------------------------------------------------------------------------

def _read_csv(text: str, **kwargs) -> pd.DataFrame:
    """Every cell as a string; missing trailing cells come back as ""."""
    try:
        frame = pd.read_csv(
            StringIO(text),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
            index_col=False,
            **kwargs,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise FormatError(f"CSV could not be parsed: {exc}") from exc
    return frame.fillna("")


def split_csv_line(line: str) -> List[str]:
    """Split one CSV line honouring double-quote quoting; tokens are trimmed."""
    frame = _read_csv(line)
    return [str(value).strip() for value in frame.iloc[0]]


def parse_csv_text(text: str) -> ParsedDataset:
    lines = _non_blank_lines(text)
    if len(lines) < 2:
        raise FormatError("CSV must contain header and at least one data row.")

    headers = split_csv_line(lines[0])
    mapping = auto_map_columns(headers)
    validate_mapping(mapping)

    # short rows are padded with "", surplus cells are dropped
    body = _read_csv("\n".join(lines[1:]), names=list(range(len(headers))))
    rows = [
        {h: str(values[i]).strip() for i, h in enumerate(headers)}
        for values in body.itertuples(index=False, name=None)
    ]

    events = normalize_rows(rows, mapping)
    logger.info("Parsed %d CSV rows with %d columns", len(events), len(headers))
    return ParsedDataset(events, headers, mapping)


# ---------------------------------------------------------------------------
# Structured records
# ---------------------------------------------------------------------------

def _to_text(value: Any) -> str:
    """String coercion that matches how JSON scalars read in a CSV export."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _record_list(data: Any) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        candidate = next((data[k] for k in RECORD_LIST_KEYS if data.get(k) is not None), None)
        if isinstance(candidate, list):
            return candidate
        raise FormatError('JSON must be an array or contain an "events", "data", "records", or "rows" array.')
    raise FormatError("JSON must be an array of login event objects.")


def parse_records(data: Any) -> ParsedDataset:
    """Parse an already-decoded JSON document (list or list-bearing object)."""
    records = _record_list(data)
    if not records:
        raise FormatError("JSON array is empty — at least one event is required.")

    first = records[0] if isinstance(records[0], dict) else {}
    headers = [str(k) for k in first.keys()]
    mapping = auto_map_columns(headers)
    validate_mapping(mapping)

    events: List[CanonicalEvent] = []
    for idx, record in enumerate(records, start=1):
        if not isinstance(record, dict):
            logger.warning("Skipping record %d: expected an object, got %s", idx, type(record).__name__)
            continue
        row = {str(k): _to_text(v) for k, v in record.items()}
        events.append(normalize_row(row, mapping, idx))

    logger.info("Parsed %d JSON records with %d columns", len(events), len(headers))
    return ParsedDataset(events, headers, mapping)


def parse_json_text(text: str) -> ParsedDataset:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FormatError("Invalid JSON — file could not be parsed.") from exc
    return parse_records(data)


# ---------------------------------------------------------------------------
# Loosely structured text
# ---------------------------------------------------------------------------

def _table_tokens(line: str) -> List[str]:
    return [t.strip() for t in _TABLE_SPLIT.split(line) if t.strip()]


def _header_score(line: str, known_aliases: frozenset) -> int:
    tokens = [_HEADER_JUNK.sub("_", t.strip()) for t in _TABLE_SPLIT.split(line.lower())]
    return sum(1 for t in tokens if t and t in known_aliases)


def _parse_table(lines: Sequence[str]) -> ParsedDataset:
    known_aliases = all_column_aliases()
    best_idx, best_score = -1, 0
    for i, line in enumerate(lines[:MAX_HEADER_SCAN_LINES]):
        score = _header_score(line, known_aliases)
        if score > best_score:
            best_idx, best_score = i, score

    if best_idx == -1 or best_score < MIN_HEADER_ALIAS_HITS:
        raise FormatError(
            "Could not detect login event data in the document. The file must contain a table or "
            "structured data with recognisable column headers (e.g. user, timestamp, latitude, "
            "longitude, device, ip, etc.)."
        )

    headers = _table_tokens(lines[best_idx])
    mapping = auto_map_columns(headers)
    validate_mapping(mapping)
    user_col = mapping.mapped.get("user_id")

    rows: List[Dict[str, str]] = []
    for line in lines[best_idx + 1:]:
        tokens = _table_tokens(line)
        if len(tokens) < len(headers) * 0.5:
            logger.debug("Skipping short line (%d tokens < half of %d headers)", len(tokens), len(headers))
            continue
        row = {h: tokens[i] if i < len(tokens) else "" for i, h in enumerate(headers)}
        # paginated exports repeat the header row
        if user_col and row.get(user_col, "").lower() == user_col.lower():
            continue
        rows.append(row)

    if not rows:
        raise FormatError("Document contained a header row but no parseable data rows.")

    logger.info("Parsed %d table rows (header on line %d, %d alias hits)", len(rows), best_idx + 1, best_score)
    return ParsedDataset(normalize_rows(rows, mapping), headers, mapping)


def parse_text(text: str) -> ParsedDataset:
    """Best-effort extraction from unstructured text."""
    lines = _non_blank_lines(text)

    if lines and "," in lines[0]:
        try:
            return parse_csv_text("\n".join(lines))
        except (FormatError, SchemaError) as exc:
            logger.debug("CSV strategy failed: %s", exc)

    match = _JSON_SPAN.search(text)
    if match:
        try:
            return parse_json_text(match.group(0))
        except (FormatError, SchemaError) as exc:
            logger.debug("Embedded JSON strategy failed: %s", exc)

    return _parse_table(lines)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

_PARSERS = {
    "csv": parse_csv_text,
    "json": parse_json_text,
    "text": parse_text,
}


def load_events(source: str | bytes, fmt: str) -> ParsedDataset:
    """Parse an already-read buffer using the given format hint."""
    parser = _PARSERS.get((fmt or "").lower())
    if parser is None:
        raise FormatError(f"Unknown input format '{fmt}'. Use one of: {sorted(_PARSERS)}")
    if isinstance(source, bytes):
        source = source.decode("utf-8-sig", errors="replace")
    return parser(source)


def load_events_file(path: str | Path, fmt: Optional[str] = None) -> ParsedDataset:
    """Read a file and parse it, inferring the format from its suffix."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input not found: {path}")

    if fmt is None:
        fmt = SUFFIX_FORMATS.get(path.suffix.lower())
        if fmt is None:
            raise FormatError("Unsupported file type. Please upload a CSV, JSON, or text file.")

    logger.info("Loading login events from %s (%s)", path, fmt)
    parsed = load_events(path.read_bytes(), fmt)
    logger.info("Loaded %d events, %d columns from %s", len(parsed.events), len(parsed.headers), path.name)
    return parsed
