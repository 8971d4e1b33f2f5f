"""Configuration loading utilities for RFQ Desk."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .models import DEFAULT_BUDGET_CEILING


@dataclass
class BackendConfig:
    """Connection settings for the hosted REST backend."""

    url: Optional[str] = None
    api_key_env: str = "RFQDESK_API_KEY"
    timeout: float = 30.0
    schema_path: str = "/rest/v1"

    def api_key(self) -> Optional[str]:
        return os.environ.get(self.api_key_env) or None


@dataclass
class ScoringConfig:
    """Weights and constants of the composite bid score."""

    price_weight: float = 0.30
    timeline_weight: float = 0.20
    quality_weight: float = 0.30
    completion_weight: float = 0.20
    price_divisor: float = 10000.0
    timeline_ceiling: float = 100.0
    quality_scale: float = 20.0

    def validate(self) -> None:
        total = self.price_weight + self.timeline_weight + self.quality_weight + self.completion_weight
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.4f}")
        if self.price_divisor <= 0:
            raise ValueError("scoring.price_divisor must be positive")


@dataclass
class SearchConfig:
    """Settings related to marketplace search."""

    relevance: str = "keyword"
    page_size: int = 20
    batch_size: int = 100
    budget_ceiling: float = DEFAULT_BUDGET_CEILING
    history_size: int = 10
    max_suggestions: int = 6
    categories: List[str] = field(
        default_factory=lambda: [
            "Manufacturing",
            "Technology",
            "Logistics",
            "Marketing",
            "Consulting",
            "Design",
            "Legal",
        ]
    )

    def validate(self) -> None:
        if self.page_size < 1 or self.batch_size < 1:
            raise ValueError("search.page_size and search.batch_size must be positive")


@dataclass
class OutputConfig:
    """Paths describing where reports should be written."""

    directory: Path = Path("output")
    ranking_report: str = "bid_ranking.csv"
    comparison_report: str = "bid_comparison.csv"
    analytics_log: str = "bid_analytics.json"
    search_prefix: str = "search_results"

    def resolved(self, base_path: Path) -> "OutputConfig":
        return OutputConfig(
            directory=_resolve_path(self.directory, base_path),
            ranking_report=self.ranking_report,
            comparison_report=self.comparison_report,
            analytics_log=self.analytics_log,
            search_prefix=self.search_prefix,
        )


@dataclass
class AppConfig:
    """Container for all configuration required by the CLI and engines."""

    backend: BackendConfig = field(default_factory=BackendConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def resolved(self, base_path: Path) -> "AppConfig":
        return AppConfig(
            backend=self.backend,
            scoring=self.scoring,
            search=self.search,
            output=self.output.resolved(base_path),
        )


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Load :class:`AppConfig` from a YAML file.

    Without a path the built-in defaults are returned, which is what the
    library entry points use when embedded without a configuration file.
    """

    if path is None:
        return AppConfig()

    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file '{config_path}' does not exist")

    with config_path.open("r", encoding="utf-8") as stream:
        raw_config: Mapping[str, Any] = yaml.safe_load(stream) or {}

    if not isinstance(raw_config, Mapping):
        raise ValueError("Configuration root must be a mapping")

    backend = BackendConfig(**_section(raw_config, "backend", BackendConfig))
    scoring = ScoringConfig(**_section(raw_config, "scoring", ScoringConfig))
    search = SearchConfig(**_section(raw_config, "search", SearchConfig))
    output = OutputConfig(**_parse_output_section(raw_config.get("output") or {}))

    scoring.validate()
    search.validate()

    config = AppConfig(backend=backend, scoring=scoring, search=search, output=output)
    return config.resolved(config_path.parent)


def _section(raw_config: Mapping[str, Any], name: str, target: type) -> Dict[str, Any]:
    section = raw_config.get(name) or {}
    if not isinstance(section, Mapping):
        raise ValueError(f"Configuration section '{name}' must be a mapping")
    known = {field_info.name for field_info in fields(target)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise KeyError(f"Unknown keys in '{name}' section: {', '.join(unknown)}")
    return dict(section)


def _parse_output_section(section: Mapping[str, Any]) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {}
    if "directory" in section:
        parsed["directory"] = Path(section["directory"])
    for key in ("ranking_report", "comparison_report", "analytics_log", "search_prefix"):
        if key in section:
            parsed[key] = section[key]
    return parsed


def _resolve_path(path: Path, base_path: Path) -> Path:
    expanded = Path(path).expanduser()
    if expanded.is_absolute():
        return expanded
    return (base_path / expanded).resolve()


__all__ = [
    "AppConfig",
    "BackendConfig",
    "OutputConfig",
    "ScoringConfig",
    "SearchConfig",
    "load_config",
]
