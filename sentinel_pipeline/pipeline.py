"""
Sentinel Pipeline Orchestrator
===============================
ingest -> score -> derive, plus threshold-only re-derivation.

Usage:
  python -m sentinel_pipeline.pipeline data/logins.csv --output output/
  python -m sentinel_pipeline.pipeline --sample 80 --output output/
  python -m sentinel_pipeline.pipeline --rederive output/result.json --warning 40 --critical 70

Outputs (in --output, default output/):
  - normalized_events.csv       (full runs only)
  - column_mapping.json         (file inputs only)
  - event_risk.csv, alerts.csv
  - hourly_risk_trend.csv, daily_alert_trend.csv, top_risk_entities.csv
  - summary.json, result.json
  - hourly_risk_trend.png, top_entities.png (optional)
"""
from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import DetectionSettings, IOConfig, SentinelConfig
from .entities import categorize_reason
from .loaders import ParsedDataset, load_events, load_events_file
from .models import CanonicalEvent, DetectionResult, events_to_frame
from .sample import generate_sample_dataset
from .schema import SchemaMapping
from .scoring import score_events
from .triage import derive_result, rederive

logger = logging.getLogger("sentinel")


@dataclass
class SentinelArtifacts:
    """Everything a run produced. None = stage was skipped."""
    result: DetectionResult
    events: List[CanonicalEvent] = field(default_factory=list)
    headers: List[str] = field(default_factory=list)
    mapping: Optional[SchemaMapping] = None
    paths: Dict[str, Path] = field(default_factory=dict)


class SentinelPipeline:
    """
    Typical usage:
        pipe = SentinelPipeline()
        parsed = pipe.ingest_file("logins.csv")
        result = pipe.detect(parsed.events)

        # thresholds changed later; no rescoring
        live = pipe.rederive(result, settings.with_thresholds(40, 70))
    """

    def __init__(self, cfg: Optional[SentinelConfig] = None):
        self.cfg = cfg or SentinelConfig()

    @property
    def settings(self) -> DetectionSettings:
        return self.cfg.settings

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, source: str | bytes, fmt: str) -> ParsedDataset:
        return load_events(source, fmt)

    def ingest_file(self, path: str | Path, fmt: Optional[str] = None) -> ParsedDataset:
        return load_events_file(path, fmt)

    @staticmethod
    def add_event(events: Sequence[CanonicalEvent], event: CanonicalEvent) -> List[CanonicalEvent]:
        """Append a manually entered event, numbering it after the existing rows."""
        return list(events) + [dataclasses.replace(event, row_id=len(events) + 1)]

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, events: Sequence[CanonicalEvent], settings: Optional[DetectionSettings] = None) -> DetectionResult:
        if not events:
            raise ValueError("Upload a valid login dataset before running detection.")
        settings = settings or self.settings
        event_risk = score_events(events, settings)
        return derive_result(event_risk, settings, self.cfg.summary_top_n)

    def rederive(
        self,
        result: DetectionResult,
        settings: Optional[DetectionSettings] = None,
        top_n: Optional[int] = None,
    ) -> DetectionResult:
        return rederive(result, settings or self.settings, top_n or self.cfg.live_top_n)


# ---------------------------------------------------------------------------
# Artifact writing
# ---------------------------------------------------------------------------

def ensure_output_dir(io: IOConfig) -> Path:
    out = Path(io.output_dir)
    out.mkdir(parents=True, exist_ok=True)
    return out


def write_artifacts(
    artifacts: SentinelArtifacts,
    cfg: SentinelConfig,
) -> Dict[str, Path]:
    out_dir = ensure_output_dir(cfg.io)
    paths: Dict[str, Path] = {}

    if artifacts.events:
        paths["normalized_events"] = out_dir / "normalized_events.csv"
        events_to_frame(artifacts.events).to_csv(paths["normalized_events"], index=False)

    if artifacts.mapping is not None:
        paths["column_mapping"] = out_dir / "column_mapping.json"
        with paths["column_mapping"].open("w", encoding="utf-8") as f:
            json.dump({"headers": artifacts.headers, **artifacts.mapping.as_dict()}, f, indent=2, ensure_ascii=False)

    frames = artifacts.result.frames()
    frames["alerts"]["category"] = frames["alerts"]["description"].map(categorize_reason)
    for name, frame in frames.items():
        paths[name] = out_dir / f"{name}.csv"
        frame.to_csv(paths[name], index=False)

    paths["summary"] = out_dir / "summary.json"
    with paths["summary"].open("w", encoding="utf-8") as f:
        json.dump(artifacts.result.summary.as_dict(), f, indent=2)

    paths["result"] = artifacts.result.save(out_dir / "result.json")

    if cfg.io.make_plots:
        from .visuals import plot_hourly_risk, plot_top_entities

        logger.info("Generating plots")
        paths["hourly_risk_plot"] = plot_hourly_risk(artifacts.result, out_dir)
        paths["top_entities_plot"] = plot_top_entities(artifacts.result, cfg.settings, out_dir)

    logger.info("Done. Outputs in %s", out_dir)
    return paths


def run(cfg: SentinelConfig, events: Optional[Sequence[CanonicalEvent]] = None) -> SentinelArtifacts:
    """Full batch run: load (unless events are given), score, derive, write."""
    pipe = SentinelPipeline(cfg)

    headers: List[str] = []
    mapping: Optional[SchemaMapping] = None
    if events is None:
        parsed = pipe.ingest_file(cfg.io.input_path, cfg.io.input_format)
        events, headers, mapping = parsed.events, parsed.headers, parsed.mapping
        for note in mapping.notes:
            logger.info("Column mapping: %s", note)

    events = list(events)
    logger.info("Running detection on %d events", len(events))
    result = pipe.detect(events)

    artifacts = SentinelArtifacts(result=result, events=events, headers=headers, mapping=mapping)
    artifacts.paths = write_artifacts(artifacts, cfg)
    return artifacts


def run_rederive(cfg: SentinelConfig, result_path: str | Path) -> SentinelArtifacts:
    """Re-level a stored result.json under cfg.settings and rewrite the outputs."""
    logger.info("Re-deriving %s at warning=%s critical=%s",
                result_path, cfg.settings.warning_threshold, cfg.settings.critical_threshold)
    stored = DetectionResult.load(result_path)
    result = SentinelPipeline(cfg).rederive(stored)
    artifacts = SentinelArtifacts(result=result)
    artifacts.paths = write_artifacts(artifacts, cfg)
    return artifacts


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Score login events for identity-theft risk")
    parser.add_argument("input", nargs="?", type=Path, help="CSV, JSON or text export of login events")
    parser.add_argument("--output", type=Path, help="Directory for output artifacts (default: config value, else output/)")
    parser.add_argument("--format", choices=["csv", "json", "text"], help="Override format detection")
    parser.add_argument("--config", type=Path, help="JSON config (see SentinelConfig.to_json)")
    parser.add_argument("--warning", type=float, help="Warning threshold override")
    parser.add_argument("--critical", type=float, help="Critical threshold override")
    parser.add_argument("--no-plots", action="store_true", help="Skip PNG outputs")
    parser.add_argument("--sample", type=int, metavar="N", help="Score N generated sample events instead of a file")
    parser.add_argument("--seed", type=int, default=0, help="Seed for --sample")
    parser.add_argument("--rederive", type=Path, metavar="RESULT_JSON",
                        help="Re-level a stored result.json under the given thresholds")
    return parser


def config_from_args(args: argparse.Namespace) -> SentinelConfig:
    cfg = SentinelConfig.from_json(args.config) if args.config else SentinelConfig()
    settings = cfg.settings
    if args.warning is not None or args.critical is not None:
        settings = settings.with_thresholds(
            args.warning if args.warning is not None else settings.warning_threshold,
            args.critical if args.critical is not None else settings.critical_threshold,
        )
    settings.validate()
    io = dataclasses.replace(
        cfg.io,
        input_path=args.input or cfg.io.input_path,
        output_dir=args.output or cfg.io.output_dir,
        input_format=args.format or cfg.io.input_format,
        make_plots=cfg.io.make_plots and not args.no_plots,
    )
    return dataclasses.replace(cfg, io=io, settings=settings)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    cfg = config_from_args(args)

    if args.rederive:
        run_rederive(cfg, args.rederive)
    elif args.sample:
        run(cfg, events=generate_sample_dataset(args.sample, seed=args.seed))
    elif args.input:
        run(cfg)
    else:
        parser.error("provide an input file, --sample N, or --rederive RESULT_JSON")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
