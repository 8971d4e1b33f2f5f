"""Composite scoring, comparison and analytics for one RFQ's bids."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from .config import ScoringConfig
from .models import Bid

logger = logging.getLogger(__name__)

SORT_KEYS = ("price", "timeline", "rating", "submitted")
SORT_ORDERS = ("asc", "desc")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_DEFAULT_SCORING = ScoringConfig()


@dataclass(frozen=True)
class VendorMetrics:
    """Performance signals of a bid's vendor after defaulting."""

    quality_score: float
    completion_rate: float
    has_history: bool


@dataclass(frozen=True)
class BidComparison:
    """Side-by-side projection of one selected bid."""

    bid_id: str
    vendor: str
    price: float
    currency: str
    timeline_days: int
    score: int
    rating: float
    completion_rate: float


@dataclass
class BidAnalytics:
    """Aggregate view over a (filtered) bid set."""

    count: int
    average_price: int
    average_timeline: int
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    distribution: Dict[str, float] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "average_price": self.average_price,
            "average_timeline": self.average_timeline,
            "min_price": self.min_price,
            "max_price": self.max_price,
            "distribution": dict(self.distribution),
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up."""

    return int(math.floor(value + 0.5))


def resolve_metrics(bid: Bid) -> VendorMetrics:
    """Apply the single defaulting policy for optional vendor metrics.

    Missing values count as 0. A vendor whose quality score and completion
    rate are both missing or zero has no usable performance history.
    """

    quality = bid.vendor_quality_score or 0.0
    completion = bid.vendor_completion_rate or 0.0
    return VendorMetrics(
        quality_score=float(quality),
        completion_rate=float(completion),
        has_history=bool(quality or completion),
    )


def score_bid(bid: Bid, config: Optional[ScoringConfig] = None) -> int:
    """Return the composite ranking score of ``bid`` in ``[0, 100]``."""

    config = config or _DEFAULT_SCORING
    metrics = resolve_metrics(bid)
    if not metrics.has_history:
        return 0

    price_score = max(0.0, 100.0 - bid.total_price / config.price_divisor)
    timeline_score = max(0.0, config.timeline_ceiling - bid.delivery_timeline_days)
    quality_score = max(0.0, metrics.quality_score * config.quality_scale)
    completion_score = max(0.0, metrics.completion_rate)

    total = (
        price_score * config.price_weight
        + timeline_score * config.timeline_weight
        + quality_score * config.quality_weight
        + completion_score * config.completion_weight
    )
    return round_half_up(total)


def _sort_key(sort_by: Optional[str]) -> Optional[Callable[[Bid], float]]:
    if sort_by == "price":
        return lambda bid: bid.total_price
    if sort_by == "timeline":
        return lambda bid: bid.delivery_timeline_days
    if sort_by == "rating":
        return lambda bid: bid.vendor_quality_score or 0.0
    if sort_by == "submitted":
        return lambda bid: (bid.submitted_at or _EPOCH).timestamp()
    return None


def filter_and_sort_bids(
    bids: Iterable[Bid],
    status: str = "all",
    sort_by: Optional[str] = "price",
    order: str = "asc",
) -> List[Bid]:
    """Filter bids by status and return them in a new, stably sorted list."""

    if order not in SORT_ORDERS:
        raise ValueError(f"Sort order must be one of {SORT_ORDERS}, got '{order}'")

    selected = [bid for bid in bids if status == "all" or bid.status == status]
    key = _sort_key(sort_by)
    if key is None:
        if sort_by is not None:
            logger.debug("Unknown sort key '%s'; keeping input order", sort_by)
        return selected
    return sorted(selected, key=key, reverse=order == "desc")


def toggle_selection(selected: Sequence[str], bid_id: str) -> List[str]:
    """Add ``bid_id`` to the selection, or remove it when already selected."""

    if bid_id in selected:
        return [existing for existing in selected if existing != bid_id]
    return [*selected, bid_id]


def compare_bids(
    bids: Iterable[Bid],
    selected_ids: Iterable[str],
    config: Optional[ScoringConfig] = None,
) -> List[BidComparison]:
    """Project the selected bids for side-by-side comparison.

    Identifiers that no longer resolve to a bid are skipped.
    """

    by_id = {bid.id: bid for bid in bids}
    rows: List[BidComparison] = []
    for bid_id in selected_ids:
        bid = by_id.get(bid_id)
        if bid is None:
            logger.debug("Selected bid '%s' is no longer available", bid_id)
            continue
        metrics = resolve_metrics(bid)
        rows.append(
            BidComparison(
                bid_id=bid.id,
                vendor=bid.vendor_label,
                price=bid.total_price,
                currency=bid.currency,
                timeline_days=bid.delivery_timeline_days,
                score=score_bid(bid, config),
                rating=metrics.quality_score,
                completion_rate=metrics.completion_rate,
            )
        )
    return rows


def analyze_bids(bids: Sequence[Bid]) -> BidAnalytics:
    """Compute count, averages and the relative price distribution."""

    if not bids:
        return BidAnalytics(count=0, average_price=0, average_timeline=0)

    prices = [bid.total_price for bid in bids]
    timelines = [bid.delivery_timeline_days for bid in bids]
    max_price = max(prices)

    distribution = {
        bid.id: (bid.total_price / max_price * 100.0) if max_price > 0 else 0.0
        for bid in bids
    }
    return BidAnalytics(
        count=len(bids),
        average_price=round_half_up(sum(prices) / len(prices)),
        average_timeline=round_half_up(sum(timelines) / len(timelines)),
        min_price=min(prices),
        max_price=max_price,
        distribution=distribution,
    )


RANKING_COLUMNS = [
    "rank",
    "bid_id",
    "vendor",
    "status",
    "total_price",
    "currency",
    "delivery_timeline_days",
    "warranty_period_months",
    "quality_score",
    "completion_rate",
    "score",
    "submitted_at",
]


def rank_bids(
    bids: Sequence[Bid],
    config: Optional[ScoringConfig] = None,
    keep_order: bool = False,
) -> pd.DataFrame:
    """Return a ranking table with one row per bid.

    ``rank`` always reflects the score (1 is best, ties keep input order).
    Rows are sorted best score first unless ``keep_order`` is set, in which
    case they stay in the order of ``bids``.
    """

    if not bids:
        return pd.DataFrame(columns=RANKING_COLUMNS)

    frame = pd.DataFrame(
        {
            "bid_id": [bid.id for bid in bids],
            "vendor": [bid.vendor_label for bid in bids],
            "status": [bid.status for bid in bids],
            "total_price": [bid.total_price for bid in bids],
            "currency": [bid.currency for bid in bids],
            "delivery_timeline_days": [bid.delivery_timeline_days for bid in bids],
            "warranty_period_months": [bid.warranty_period_months for bid in bids],
            "quality_score": [bid.vendor_quality_score for bid in bids],
            "completion_rate": [bid.vendor_completion_rate for bid in bids],
            "score": [score_bid(bid, config) for bid in bids],
            "submitted_at": [
                bid.submitted_at.isoformat() if bid.submitted_at else None for bid in bids
            ],
        }
    )
    by_score = frame.sort_values("score", ascending=False, kind="mergesort").index
    frame["rank"] = 0
    frame.loc[by_score, "rank"] = list(range(1, len(frame) + 1))
    if not keep_order:
        frame = frame.loc[by_score].reset_index(drop=True)
    return frame[RANKING_COLUMNS]


__all__ = [
    "BidAnalytics",
    "BidComparison",
    "RANKING_COLUMNS",
    "SORT_KEYS",
    "VendorMetrics",
    "analyze_bids",
    "compare_bids",
    "filter_and_sort_bids",
    "rank_bids",
    "resolve_metrics",
    "round_half_up",
    "score_bid",
    "toggle_selection",
]
