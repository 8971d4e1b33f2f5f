"""Record types shared by the scoring and search pipelines."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

BID_STATUSES: Tuple[str, ...] = ("submitted", "under_review", "accepted", "rejected")
ENTITY_TYPES: Tuple[str, ...] = ("all", "requests", "offers", "vendors")
RESULT_TYPES: Dict[str, str] = {
    "requests": "request",
    "offers": "offer",
    "vendors": "vendor",
}

DEFAULT_BUDGET_CEILING = 10000.0

# Values the UI sends when a categorical filter is left open.
UNCONSTRAINED_VALUES = frozenset({"", "all", "all categories", "any urgency", "any"})


@dataclass
class Bid:
    """A vendor's priced, timed response to one RFQ, joined with vendor data."""

    id: str
    rfq_id: str
    total_price: float
    delivery_timeline_days: int
    status: str = "submitted"
    vendor_id: Optional[str] = None
    currency: str = "SAR"
    submitted_at: Optional[datetime] = None
    warranty_period_months: Optional[int] = None
    payment_terms: Optional[str] = None
    proposal: str = ""
    vendor_name: Optional[str] = None
    vendor_company: Optional[str] = None
    vendor_address: Optional[str] = None
    vendor_quality_score: Optional[float] = None
    vendor_completion_rate: Optional[float] = None
    vendor_response_time_hours: Optional[float] = None
    vendor_completed_orders: Optional[int] = None

    @property
    def vendor_label(self) -> str:
        return self.vendor_company or self.vendor_name or self.vendor_id or "Unknown vendor"


@dataclass
class SearchFilters:
    """Structured query descriptor collected from the search form."""

    query: str = ""
    category: str = ""
    location: str = ""
    budget_range: Tuple[float, float] = (0.0, DEFAULT_BUDGET_CEILING)
    rating: float = 0.0
    availability: bool = False
    urgency: str = ""
    tags: Tuple[str, ...] = ()
    entity_type: str = "all"
    status: Optional[str] = None

    def __post_init__(self) -> None:
        self.tags = _dedupe_tags(self.tags)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "SearchFilters":
        """Build filters from loosely typed form input, rejecting malformed values."""

        budget = raw.get("budget_range", raw.get("budgetRange"))
        if budget is None:
            budget_range = (0.0, DEFAULT_BUDGET_CEILING)
        else:
            budget_range = _parse_budget(budget)

        entity_type = str(raw.get("entity_type", raw.get("entityType", "all")) or "all").lower()
        if entity_type not in ENTITY_TYPES:
            raise ValueError(f"Unknown entity type '{entity_type}'")

        rating = _parse_number(raw.get("rating", 0) or 0, "rating")
        if rating < 0:
            raise ValueError("rating must not be negative")

        tags = raw.get("tags") or ()
        if isinstance(tags, str):
            tags = [tags]

        status = raw.get("status")
        return cls(
            query=str(raw.get("query") or ""),
            category=str(raw.get("category") or ""),
            location=str(raw.get("location") or ""),
            budget_range=budget_range,
            rating=rating,
            availability=_parse_flag(raw.get("availability", False), "availability"),
            urgency=str(raw.get("urgency") or ""),
            tags=tuple(str(tag) for tag in tags),
            entity_type=entity_type,
            status=str(status) if status else None,
        )

    def entity_types(self) -> Tuple[str, ...]:
        if self.entity_type == "all":
            return ENTITY_TYPES[1:]
        return (self.entity_type,)

    def budget_is_open(self, ceiling: float = DEFAULT_BUDGET_CEILING) -> bool:
        low, high = self.budget_range
        return low <= 0 and (math.isinf(high) or high >= ceiling)

    def has_active_filters(self, ceiling: float = DEFAULT_BUDGET_CEILING) -> bool:
        return bool(
            self.query.strip()
            or is_constrained(self.category)
            or is_constrained(self.location)
            or not self.budget_is_open(ceiling)
            or self.rating > 0
            or self.availability
            or is_constrained(self.urgency)
            or self.tags
            or is_constrained(self.status)
        )


@dataclass
class Candidate:
    """A request, offer or vendor row normalised for filtering and ranking."""

    id: str
    type: str
    title: str
    description: str = ""
    status: str = ""
    location: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    rating: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    categories: Tuple[str, ...] = ()
    urgency: Optional[str] = None
    tags: Tuple[str, ...] = ()
    available: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """A ranked hit returned to the caller; never mutated after construction."""

    id: str
    type: str
    title: str
    description: str
    status: str
    relevance: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    location: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    rating: Optional[float] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


def is_constrained(value: Optional[str]) -> bool:
    """Return ``True`` when a categorical filter value narrows the result set."""

    if value is None:
        return False
    return value.strip().lower() not in UNCONSTRAINED_VALUES


def _dedupe_tags(tags: Iterable[str]) -> Tuple[str, ...]:
    seen = set()
    unique = []
    for tag in tags or ():
        cleaned = str(tag).strip()
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        unique.append(cleaned)
    return tuple(unique)


def _parse_budget(value: Any) -> Tuple[float, float]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise ValueError("budget_range must be a [min, max] pair")
    bounds = list(value)
    if len(bounds) != 2:
        raise ValueError("budget_range must be a [min, max] pair")
    low = _parse_number(bounds[0], "budget minimum")
    high = _parse_number(bounds[1], "budget maximum")
    if low < 0 or high < 0:
        raise ValueError("budget bounds must not be negative")
    if low > high:
        raise ValueError("budget minimum must not exceed the maximum")
    return low, high


_TRUE_FLAGS = frozenset({"true", "1", "yes", "on"})
_FALSE_FLAGS = frozenset({"false", "0", "no", "off", ""})


def _parse_flag(value: Any, label: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_FLAGS:
            return True
        if text in _FALSE_FLAGS:
            return False
    raise ValueError(f"{label} must be a boolean, got {value!r}")


def _parse_number(value: Any, label: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{label} must be numeric, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be numeric, got {value!r}") from None
    if math.isnan(number):
        raise ValueError(f"{label} must be numeric, got {value!r}")
    return number


__all__ = [
    "BID_STATUSES",
    "Bid",
    "Candidate",
    "DEFAULT_BUDGET_CEILING",
    "ENTITY_TYPES",
    "RESULT_TYPES",
    "SearchFilters",
    "SearchResult",
    "is_constrained",
]
