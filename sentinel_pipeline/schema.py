"""
Schema mapping and row normalization.
======================================
Reconciles arbitrary input headers to the canonical login schema, then turns
raw key/value rows into CanonicalEvent objects.

Header matching runs three strategies per canonical field, in order, each
over the headers not yet claimed by an earlier field:
  1. exact      normalized header == alias
  2. substring  header contains alias or alias contains header (len > 1)
  3. token      shared "_"-tokens cover at least half of the alias tokens
The first strategy that finds a header wins and the header is claimed.

Canonical output fields:
  user_id, timestamp (required)
  lat, long, device_id, ip_address, login_result (optional, defaulted)
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from .aliases import CANONICAL_FIELDS, COLUMN_ALIASES, CRITICAL_FIELDS, OPTIONAL_DEFAULTS
from .models import CanonicalEvent

logger = logging.getLogger("sentinel.schema")

_HEADER_JUNK = re.compile(r"[^a-z0-9_]")
_EXTRA_JUNK = re.compile(r"[^a-z0-9]")


class SchemaError(ValueError):
    """Raised when a critical canonical field cannot be matched to any header."""

    def __init__(self, missing: Sequence[str], attempted: Mapping[str, Tuple[str, ...]]):
        self.missing = tuple(missing)
        self.attempted = dict(attempted)
        hint = "; ".join(
            f'"{f}" (looked for: {", ".join(self.attempted[f][:6])}, …)' for f in self.missing
        )
        super().__init__(
            f"Could not identify critical columns: {', '.join(self.missing)}. "
            f"Please ensure your dataset contains columns like: {hint}"
        )


@dataclass(frozen=True)
class SchemaMapping:
    # canonical field -> raw header that matched it
    mapped: Dict[str, str] = field(default_factory=dict)
    # optional fields that fell back to their declared default
    defaults: List[str] = field(default_factory=list)
    # raw headers not claimed by any field
    ignored: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    @property
    def missing_critical(self) -> List[str]:
        return [f for f in CRITICAL_FIELDS if f not in self.mapped]

    def as_dict(self) -> Dict[str, object]:
        return {
            "mapped": dict(self.mapped),
            "defaults": list(self.defaults),
            "ignored": list(self.ignored),
            "notes": list(self.notes),
        }


# ---------------------------------------------------------------------------
# Header matching
# ---------------------------------------------------------------------------

def normalize_header(header: str) -> str:
    """Trim, lower-case, and replace anything outside [a-z0-9_] with '_'."""
    return _HEADER_JUNK.sub("_", header.strip().lower())


def _exact(header: str, alias: str) -> bool:
    return header == alias


def _substring(header: str, alias: str) -> bool:
    return len(header) > 1 and (alias in header or header in alias)


def _token_overlap(header: str, alias: str) -> bool:
    alias_tokens = alias.split("_")
    header_tokens = header.split("_")
    overlap = [t for t in alias_tokens if t in header_tokens]
    return len(overlap) > 0 and len(overlap) >= len(alias_tokens) * 0.5


Matcher = Callable[[str, str], bool]

MATCHERS: Tuple[Tuple[str, Matcher], ...] = (
    ("exact", _exact),
    ("substring", _substring),
    ("token", _token_overlap),
)


def _find_match(
    normalized: Sequence[str],
    aliases: Sequence[str],
    claimed: FrozenSet[int],
) -> Optional[Tuple[int, str]]:
    """Return (header index, strategy name) of the first hit, or None."""
    for name, matcher in MATCHERS:
        for alias in aliases:
            for idx, header in enumerate(normalized):
                if idx not in claimed and matcher(header, alias):
                    return idx, name
    return None


def auto_map_columns(raw_headers: Sequence[str]) -> SchemaMapping:
    """Map raw headers onto the canonical fields. Pure; never raises."""
    normalized = [normalize_header(h) for h in raw_headers]
    claimed: FrozenSet[int] = frozenset()
    mapped: Dict[str, str] = {}
    defaults: List[str] = []
    notes: List[str] = []

    for canonical in CANONICAL_FIELDS:
        hit = _find_match(normalized, COLUMN_ALIASES[canonical], claimed)
        if hit is not None:
            idx, strategy = hit
            claimed = claimed | {idx}
            mapped[canonical] = raw_headers[idx]
            logger.debug("Matched %r -> %s (%s)", raw_headers[idx], canonical, strategy)
            if normalized[idx] != canonical:
                notes.append(f'"{raw_headers[idx]}" → {canonical}')
        elif canonical in OPTIONAL_DEFAULTS:
            defaults.append(canonical)
            notes.append(f"{canonical}: not found — using default")
        else:
            notes.append(f"{canonical}: could not be identified in the dataset")

    ignored = [h for i, h in enumerate(raw_headers) if i not in claimed]
    if ignored:
        notes.append(f"Extra columns ignored: {', '.join(ignored)}")

    return SchemaMapping(mapped=mapped, defaults=defaults, ignored=ignored, notes=notes)


def validate_mapping(mapping: SchemaMapping) -> None:
    """Raise SchemaError if user_id or timestamp went unmatched."""
    missing = mapping.missing_critical
    if missing:
        raise SchemaError(missing, {f: COLUMN_ALIASES[f] for f in missing})


# ---------------------------------------------------------------------------
# Row normalization
# ---------------------------------------------------------------------------

def extra_key(header: str) -> str:
    """Key used for the preserved-column table: lower-case alphanumerics only."""
    return _EXTRA_JUNK.sub("", header.lower())


def parse_number(value: Optional[str]) -> float:
    """Lenient numeric parse; blanks, junk and NaN all become 0."""
    try:
        number = float((value or "").strip())
    except ValueError:
        return 0.0
    return 0.0 if math.isnan(number) else number


def normalize_row(row: Mapping[str, str], mapping: SchemaMapping, row_id: int) -> CanonicalEvent:
    def get(canonical: str) -> str:
        value = None
        column = mapping.mapped.get(canonical)
        if column is not None:
            value = row.get(column)
            if value is None:
                value = row.get(column.lower())
        return value or OPTIONAL_DEFAULTS.get(canonical, "")

    extra = {extra_key(k): v for k, v in row.items()}

    return CanonicalEvent(
        row_id=row_id,
        user_id=get("user_id"),
        timestamp=get("timestamp"),
        lat=parse_number(get("lat")),
        long=parse_number(get("long")),
        device_id=get("device_id") or "unknown",
        ip_address=get("ip_address") or None,
        login_result=get("login_result") or None,
        extra=extra,
    )


def normalize_rows(rows: Iterable[Mapping[str, str]], mapping: SchemaMapping) -> List[CanonicalEvent]:
    """Normalize rows in order, numbering them from 1."""
    events = [normalize_row(row, mapping, i) for i, row in enumerate(rows, start=1)]
    logger.info("Normalized %d rows (%d mapped fields, %d defaulted)",
                len(events), len(mapping.mapped), len(mapping.defaults))
    return events
