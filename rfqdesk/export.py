"""Utilities for exporting rankings and search results to disk."""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .config import OutputConfig
from .formatting import format_percentage
from .models import SearchResult
from .scoring import BidAnalytics, BidComparison

logger = logging.getLogger(__name__)

SEARCH_EXPORT_COLUMNS = [
    "Type",
    "Title",
    "Description",
    "Location",
    "Price",
    "Status",
    "Created At",
    "Relevance",
]


def results_to_rows(results: Sequence[SearchResult]) -> List[Dict[str, str]]:
    """Flatten results into export rows with a fixed column order."""

    rows: List[Dict[str, str]] = []
    for result in results:
        values = [
            result.type,
            result.title,
            result.description,
            result.location,
            _format_number(result.price),
            result.status,
            result.created_at.isoformat() if result.created_at else None,
            format_percentage(result.relevance),
        ]
        rows.append(
            {column: "" if value is None else str(value) for column, value in zip(SEARCH_EXPORT_COLUMNS, values)}
        )
    return rows


def results_to_csv(results: Sequence[SearchResult]) -> str:
    """Serialise results to CSV text with every field quoted."""

    frame = pd.DataFrame(results_to_rows(results), columns=SEARCH_EXPORT_COLUMNS)
    return frame.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")


def export_search_results(
    results: Sequence[SearchResult],
    output: OutputConfig,
    today: Optional[date] = None,
) -> Path:
    """Write ``results`` to ``<prefix>_<YYYY-MM-DD>.csv`` in the output directory."""

    output_dir = output.directory
    output_dir.mkdir(parents=True, exist_ok=True)
    stamp = (today or date.today()).isoformat()
    path = output_dir / f"{output.search_prefix}_{stamp}.csv"
    path.write_text(results_to_csv(results), encoding="utf-8")
    logger.info("Wrote %d search results to %s", len(results), path)
    return path


def export_bid_report(
    ranking: pd.DataFrame,
    analytics: BidAnalytics,
    output: OutputConfig,
    comparison: Optional[Sequence[BidComparison]] = None,
    metadata: Optional[Dict[str, object]] = None,
) -> Dict[str, Path]:
    """Persist the bid ranking, optional comparison and analytics audit."""

    output_dir = output.directory
    output_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Writing bid reports to %s", output_dir)

    paths: Dict[str, Path] = {}

    ranking_path = output_dir / output.ranking_report
    ranking.to_csv(ranking_path, index=False)
    paths["ranking"] = ranking_path

    if comparison:
        comparison_path = output_dir / output.comparison_report
        pd.DataFrame([asdict(row) for row in comparison]).to_csv(comparison_path, index=False)
        paths["comparison"] = comparison_path

    audit_payload: Dict[str, object] = dict(metadata or {})
    audit_payload["analytics"] = analytics.as_dict()
    audit_payload["ranking"] = ranking.to_dict(orient="records")
    audit_path = output_dir / output.analytics_log
    with audit_path.open("w", encoding="utf-8") as handle:
        json.dump(audit_payload, handle, ensure_ascii=False, indent=2, default=str)
    paths["analytics"] = audit_path

    return paths


def _format_number(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    return str(int(value)) if float(value).is_integer() else str(value)


__all__ = [
    "SEARCH_EXPORT_COLUMNS",
    "export_bid_report",
    "export_search_results",
    "results_to_csv",
    "results_to_rows",
]
