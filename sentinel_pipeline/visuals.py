"""Static matplotlib exports for batch reports."""
from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from .config import DetectionSettings  # noqa: E402
from .models import DetectionResult  # noqa: E402
from .scoring import risk_level  # noqa: E402

LEVEL_COLORS = {"high": "#d62728", "medium": "#ff7f0e", "low": "#2ca02c"}


def plot_hourly_risk(result: DetectionResult, out_dir: Path) -> Path:
    path = out_dir / "hourly_risk_trend.png"
    labels = [p.label for p in result.hourly_risk_trend]
    values = [p.value for p in result.hourly_risk_trend]
    plt.figure(figsize=(10, 4))
    plt.bar(labels, values, color="#1f77b4")
    plt.title("Mean Risk Score by Hour of Day (UTC)")
    plt.xlabel("Hour")
    plt.ylabel("Mean score")
    plt.xticks(rotation=90)
    plt.tight_layout()
    plt.savefig(path, dpi=160)
    plt.close()
    return path


def plot_top_entities(result: DetectionResult, settings: DetectionSettings, out_dir: Path) -> Path:
    path = out_dir / "top_entities.png"
    top = result.top_risk_entities[::-1]  # reverse for horizontal bar aesthetics

    fig, ax = plt.subplots(figsize=(10, max(4, len(top) * 0.5)))
    colors = [LEVEL_COLORS[risk_level(e.max_score, settings)] for e in top]
    ax.barh([e.user_id for e in top], [e.max_score for e in top], color=colors)
    ax.axvline(settings.warning_threshold, color=LEVEL_COLORS["medium"], linestyle="--", linewidth=1)
    ax.axvline(settings.critical_threshold, color=LEVEL_COLORS["high"], linestyle="--", linewidth=1)
    ax.set_xlim(0, 100)
    ax.set_xlabel("Max risk score")
    ax.set_title(f"Top {len(top)} Subjects by Max Risk Score")
    plt.tight_layout()
    plt.savefig(path, dpi=160)
    plt.close(fig)
    return path
