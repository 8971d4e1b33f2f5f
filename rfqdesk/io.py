"""Shaping helpers turning raw backend rows into scoring and search records."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from .models import Bid, Candidate, RESULT_TYPES

logger = logging.getLogger(__name__)

BID_NUMERIC_COLUMNS = (
    "total_price",
    "delivery_timeline_days",
    "warranty_period_months",
    "quality_score",
    "completion_rate",
    "response_time_avg_hours",
    "total_completed_orders",
)
REQUIRED_BID_COLUMNS = ("id", "total_price", "delivery_timeline_days")

PROFILE_FIELDS = ("full_name", "company_name", "address")
METRIC_FIELDS = (
    "completion_rate",
    "quality_score",
    "response_time_avg_hours",
    "total_completed_orders",
)


def coerce_numeric(values: pd.Series) -> pd.Series:
    """Coerce textual representations of amounts into floats."""

    if not isinstance(values, pd.Series):
        values = pd.Series(values)
    if values.empty:
        return pd.to_numeric(values, errors="coerce")

    cleaned = values.astype(str)
    cleaned = cleaned.str.replace(r"\s+", "", regex=True)
    cleaned = cleaned.str.replace("\u00A0", "", regex=False)
    cleaned = cleaned.str.replace(
        r"(?i)(sar|ر\.س|aed|usd|\$|eur|€|gbp|£)", "", regex=True
    )
    cleaned = cleaned.str.replace(r"[^0-9,\.\-]", "", regex=True)

    # With both separators present the right-most one is the decimal point.
    comma_decimal = cleaned.str.rfind(",") > cleaned.str.rfind(".")
    both = cleaned.str.contains(",", regex=False) & cleaned.str.contains(".", regex=False)
    cleaned = cleaned.where(
        ~(both & comma_decimal), cleaned.str.replace(".", "", regex=False)
    )
    cleaned = cleaned.where(
        ~(both & ~comma_decimal), cleaned.str.replace(",", "", regex=False)
    )

    grouped = cleaned.str.fullmatch(r"-?\d{1,3}(,\d{3})+")
    cleaned = cleaned.where(~grouped, cleaned.str.replace(",", "", regex=False))

    cleaned = cleaned.str.replace(",", ".", regex=False)
    cleaned = cleaned.str.replace(r"[.,]$", "", regex=True)

    return pd.to_numeric(cleaned, errors="coerce")


def to_number(value: Any) -> Optional[float]:
    """Return ``value`` as a float, or ``None`` when it is missing or unparsable."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, np.integer, np.floating)):
        number = float(value)
        return None if np.isnan(number) else number
    coerced = coerce_numeric(pd.Series([value])).iloc[0]
    if pd.isna(coerced):
        return None
    return float(coerced)


def to_int(value: Any) -> Optional[int]:
    number = to_number(value)
    if number is None:
        return None
    return int(round(number))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 strings (and datetimes) into timezone-aware datetimes."""

    if value is None or value == "":
        return None
    stamp = pd.to_datetime(value, errors="coerce", utc=True)
    if pd.isna(stamp):
        logger.debug("Could not parse timestamp %r", value)
        return None
    return stamp.to_pydatetime()


def bid_from_record(
    record: Mapping[str, Any],
    profile: Optional[Mapping[str, Any]] = None,
    metrics: Optional[Mapping[str, Any]] = None,
) -> Bid:
    """Build a :class:`Bid` from a ``bids`` row plus optional vendor joins.

    Vendor fields already present on ``record`` (for example in a flat CSV
    export) are used when no explicit profile or metric row is supplied.
    """

    profile = profile or record
    metrics = metrics or record

    missing = [column for column in REQUIRED_BID_COLUMNS if _blank(record.get(column))]
    if missing:
        raise KeyError(f"Bid record is missing required fields: {', '.join(missing)}")

    total_price = to_number(record.get("total_price"))
    timeline = to_int(record.get("delivery_timeline_days"))
    if total_price is None or timeline is None:
        raise ValueError(f"Bid '{record.get('id')}' has non-numeric price or timeline")

    return Bid(
        id=str(record["id"]),
        rfq_id=str(record.get("rfq_id") or ""),
        vendor_id=_optional_str(record.get("vendor_id")),
        total_price=total_price,
        currency=str(record.get("currency") or "SAR"),
        delivery_timeline_days=timeline,
        warranty_period_months=to_int(record.get("warranty_period_months")),
        payment_terms=_optional_str(record.get("payment_terms")),
        proposal=str(record.get("proposal") or ""),
        status=str(record.get("status") or "submitted"),
        submitted_at=parse_timestamp(record.get("submitted_at")),
        vendor_name=_optional_str(profile.get("full_name")),
        vendor_company=_optional_str(profile.get("company_name")),
        vendor_address=_optional_str(profile.get("address")),
        vendor_quality_score=to_number(metrics.get("quality_score")),
        vendor_completion_rate=to_number(metrics.get("completion_rate")),
        vendor_response_time_hours=to_number(metrics.get("response_time_avg_hours")),
        vendor_completed_orders=to_int(metrics.get("total_completed_orders")),
    )


def join_vendor_records(
    bid_rows: Sequence[Mapping[str, Any]],
    profiles: Iterable[Mapping[str, Any]],
    metrics: Iterable[Mapping[str, Any]],
) -> List[Bid]:
    """Attach vendor profile and performance rows to bids by vendor id."""

    profiles_by_vendor = {str(row.get("user_id")): row for row in profiles if row.get("user_id")}
    metrics_by_vendor = {str(row.get("vendor_id")): row for row in metrics if row.get("vendor_id")}

    bids: List[Bid] = []
    for row in bid_rows:
        vendor_id = str(row.get("vendor_id") or "")
        bids.append(
            bid_from_record(
                row,
                profile=profiles_by_vendor.get(vendor_id, {}),
                metrics=metrics_by_vendor.get(vendor_id, {}),
            )
        )
    return bids


def load_bid_dataset(path: Path, rfq_id: Optional[str] = None) -> List[Bid]:
    """Load a flat bid export (CSV or JSON records) with vendor columns inline."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset '{path}' does not exist")

    logger.info("Loading bids from %s", path)
    ext = path.suffix.lower()
    if ext in {".csv", ".txt"}:
        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
    elif ext == ".json":
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        rows = payload.get("bids", []) if isinstance(payload, Mapping) else payload
        frame = pd.DataFrame.from_records(rows)
    else:
        raise ValueError(f"Unsupported file extension '{ext}' for dataset '{path}'")

    if frame.empty:
        return []

    missing = [column for column in REQUIRED_BID_COLUMNS if column not in frame.columns]
    if missing:
        raise KeyError(f"Missing required bid columns: {', '.join(missing)}")

    for column in BID_NUMERIC_COLUMNS:
        if column in frame.columns:
            frame[column] = coerce_numeric(frame[column])

    if rfq_id is not None and "rfq_id" in frame.columns:
        frame = frame[frame["rfq_id"].astype(str) == str(rfq_id)]

    frame = frame.replace({np.nan: None, "": None})
    return [bid_from_record(record) for record in frame.to_dict(orient="records")]


def candidate_from_request(record: Mapping[str, Any]) -> Candidate:
    client = record.get("user_profiles") or {}
    category = _optional_str(record.get("category"))
    return Candidate(
        id=str(record["id"]),
        type="request",
        title=str(record.get("title") or ""),
        description=str(record.get("description") or ""),
        location=_optional_str(record.get("location")),
        price=to_number(record.get("budget_max")),
        currency=_optional_str(record.get("currency")),
        rating=to_number(record.get("rating")),
        status=str(record.get("status") or ""),
        created_at=parse_timestamp(record.get("created_at")),
        updated_at=parse_timestamp(record.get("updated_at")),
        categories=(category,) if category else (),
        urgency=_optional_str(record.get("urgency")),
        tags=_string_tuple(record.get("tags")),
        available=bool(record.get("is_available", record.get("available", False))),
        metadata={
            "category": category,
            "budget_min": to_number(record.get("budget_min")),
            "budget_max": to_number(record.get("budget_max")),
            "urgency": record.get("urgency"),
            "deadline": record.get("deadline"),
            "client": client.get("full_name") or client.get("company_name"),
        },
    )


def candidate_from_offer(record: Mapping[str, Any]) -> Candidate:
    request = record.get("requests") or {}
    vendor = record.get("user_profiles") or {}
    category = _optional_str(request.get("category") or record.get("category"))
    return Candidate(
        id=str(record["id"]),
        type="offer",
        title=str(record.get("title") or ""),
        description=str(record.get("description") or ""),
        location=_optional_str(request.get("location") or record.get("location")),
        price=to_number(record.get("price")),
        currency=_optional_str(record.get("currency")),
        rating=to_number(record.get("rating")),
        status=str(record.get("client_approval_status") or record.get("status") or ""),
        created_at=parse_timestamp(record.get("created_at")),
        updated_at=parse_timestamp(record.get("updated_at")),
        categories=(category,) if category else (),
        urgency=_optional_str(record.get("urgency")),
        tags=_string_tuple(record.get("tags")),
        available=bool(record.get("is_available", record.get("available", False))),
        metadata={
            "delivery_time_days": to_int(record.get("delivery_time_days")),
            "request_title": request.get("title"),
            "category": category,
            "vendor": vendor.get("full_name") or vendor.get("company_name"),
        },
    )


def candidate_from_vendor(record: Mapping[str, Any]) -> Candidate:
    title = record.get("full_name") or record.get("company_name") or "Unnamed Vendor"
    return Candidate(
        id=str(record["id"]),
        type="vendor",
        title=str(title),
        description=str(record.get("bio") or "No description available"),
        location=_optional_str(record.get("address")),
        rating=to_number(record.get("rating", record.get("quality_score"))),
        status=str(record.get("verification_status") or record.get("status") or ""),
        created_at=parse_timestamp(record.get("created_at")),
        updated_at=parse_timestamp(record.get("updated_at")),
        categories=_string_tuple(record.get("categories")),
        tags=_string_tuple(record.get("tags")),
        available=bool(record.get("is_available", record.get("available", False))),
        metadata={
            "company_name": record.get("company_name"),
            "categories": list(_string_tuple(record.get("categories"))),
            "avatar_url": record.get("avatar_url"),
            "verification_status": record.get("verification_status"),
        },
    )


_SHAPERS = {
    "requests": candidate_from_request,
    "offers": candidate_from_offer,
    "vendors": candidate_from_vendor,
}


def shape_candidates(entity_type: str, rows: Iterable[Mapping[str, Any]]) -> List[Candidate]:
    """Normalise raw rows of ``entity_type`` into :class:`Candidate` records."""

    if entity_type not in RESULT_TYPES:
        raise ValueError(f"Unknown entity type '{entity_type}'")
    shaper = _SHAPERS[entity_type]
    return [shaper(row) for row in rows]


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and np.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _optional_str(value: Any) -> Optional[str]:
    if _blank(value):
        return None
    return str(value).strip()


def _string_tuple(value: Any) -> tuple:
    if _blank(value):
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return tuple(str(item).strip() for item in value if not _blank(item))


__all__ = [
    "bid_from_record",
    "candidate_from_offer",
    "candidate_from_request",
    "candidate_from_vendor",
    "coerce_numeric",
    "join_vendor_records",
    "load_bid_dataset",
    "parse_timestamp",
    "shape_candidates",
    "to_int",
    "to_number",
]
