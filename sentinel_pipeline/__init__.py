"""
Sentinel: identity-theft risk scoring for login event exports.

Schema auto-mapping, rule-based per-event scoring, and triage derivation
(alerts, summary, trends, top-risk subjects) with threshold-only re-derivation.
"""
from .config import DetectionSettings, IOConfig, SentinelConfig
from .entities import EntityProfile, build_entity_profile, categorize_reason, filter_alerts
from .loaders import FormatError, ParsedDataset, load_events, load_events_file
from .models import Alert, CanonicalEvent, DetectionResult, EventRisk, Summary, TopRiskEntity, TrendPoint
from .pipeline import SentinelArtifacts, SentinelPipeline, run
from .sample import generate_sample_dataset
from .schema import SchemaError, SchemaMapping, auto_map_columns
from .scoring import score_events
from .triage import derive_result, rederive

__all__ = [
    "DetectionSettings",
    "IOConfig",
    "SentinelConfig",
    "EntityProfile",
    "build_entity_profile",
    "categorize_reason",
    "filter_alerts",
    "FormatError",
    "ParsedDataset",
    "load_events",
    "load_events_file",
    "Alert",
    "CanonicalEvent",
    "DetectionResult",
    "EventRisk",
    "Summary",
    "TopRiskEntity",
    "TrendPoint",
    "SentinelArtifacts",
    "SentinelPipeline",
    "run",
    "generate_sample_dataset",
    "SchemaError",
    "SchemaMapping",
    "auto_map_columns",
    "score_events",
    "derive_result",
    "rederive",
]
