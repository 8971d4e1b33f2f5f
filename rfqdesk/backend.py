"""Data access boundary for the hosted marketplace backend."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from .config import BackendConfig
from .io import METRIC_FIELDS, PROFILE_FIELDS, join_vendor_records, shape_candidates
from .models import RESULT_TYPES, Bid, Candidate, SearchFilters, is_constrained

logger = logging.getLogger(__name__)


class DataSourceError(RuntimeError):
    """Raised when the backend cannot serve a request."""


@dataclass
class EntityPage:
    """One page of candidates plus the total number of matching rows."""

    records: List[Candidate] = field(default_factory=list)
    total: int = 0


class DataSource(ABC):
    """Capabilities the scoring and search engines need from the backend."""

    @abstractmethod
    async def fetch_bids(self, rfq_id: str) -> List[Bid]:
        """Return the bids of ``rfq_id`` joined with vendor profile and metrics."""

    @abstractmethod
    async def fetch_entities(
        self,
        entity_type: str,
        filters: SearchFilters,
        offset: int,
        limit: int,
    ) -> EntityPage:
        """Return candidates of ``entity_type`` in ``[offset, offset + limit)``."""


class InMemoryDataSource(DataSource):
    """Serve marketplace rows held in memory, e.g. loaded from a JSON export."""

    def __init__(
        self,
        requests: Optional[Sequence[Mapping[str, Any]]] = None,
        offers: Optional[Sequence[Mapping[str, Any]]] = None,
        vendors: Optional[Sequence[Mapping[str, Any]]] = None,
        bids: Optional[Sequence[Mapping[str, Any]]] = None,
        profiles: Optional[Sequence[Mapping[str, Any]]] = None,
        metrics: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> None:
        self._entities: Dict[str, List[Mapping[str, Any]]] = {
            "requests": list(requests or []),
            "offers": list(offers or []),
            "vendors": list(vendors or []),
        }
        self._bids = list(bids or [])
        self._profiles = list(profiles or [])
        self._metrics = list(metrics or [])

    @classmethod
    def from_json(cls, path: Path) -> "InMemoryDataSource":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Dataset '{path}' does not exist")
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, Mapping):
            raise ValueError(f"Dataset '{path}' must contain a JSON object")
        logger.info("Loaded marketplace fixture from %s", path)
        return cls(
            requests=payload.get("requests"),
            offers=payload.get("offers"),
            vendors=payload.get("vendors"),
            bids=payload.get("bids"),
            profiles=payload.get("user_profiles"),
            metrics=payload.get("vendor_performance_metrics"),
        )

    async def fetch_bids(self, rfq_id: str) -> List[Bid]:
        rows = [row for row in self._bids if str(row.get("rfq_id")) == str(rfq_id)]
        rows.sort(key=lambda row: str(row.get("submitted_at") or ""), reverse=True)
        return _join(rows, self._profiles, self._metrics)

    async def fetch_entities(
        self,
        entity_type: str,
        filters: SearchFilters,
        offset: int,
        limit: int,
    ) -> EntityPage:
        if entity_type not in RESULT_TYPES:
            raise DataSourceError(f"Unknown entity type '{entity_type}'")
        rows = self._entities[entity_type]
        page = rows[offset : offset + limit]
        return EntityPage(records=_shape(entity_type, page), total=len(rows))


REQUEST_SELECT = (
    "id,title,description,category,budget_min,budget_max,currency,location,deadline,"
    "urgency,status,created_at,updated_at,admin_approval_status,tags,is_available,"
    "user_profiles!requests_client_id_fkey(full_name,company_name)"
)
OFFER_SELECT = (
    "id,title,description,price,currency,delivery_time_days,status,created_at,updated_at,"
    "client_approval_status,tags,is_available,requests!inner(title,category,location),"
    "user_profiles!offers_vendor_id_fkey(full_name,company_name)"
)
VENDOR_SELECT = (
    "id,full_name,company_name,bio,avatar_url,address,verification_status,status,"
    "created_at,updated_at,categories,tags,is_available,rating"
)


class RestDataSource(DataSource):
    """PostgREST client for the hosted backend.

    Only predicates the backend evaluates with the same semantics as the local
    filters are pushed down; the search engine re-applies every predicate to
    the rows it receives.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        schema_path: str = "/rest/v1",
        approved_requests_only: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url:
            raise ValueError("A backend URL is required")
        self.base_url = base_url.rstrip("/") + schema_path
        self.timeout = timeout
        self.approved_requests_only = approved_requests_only
        self._transport = transport
        self.headers = {"Accept": "application/json"}
        if api_key:
            self.headers["apikey"] = api_key
            self.headers["Authorization"] = f"Bearer {api_key}"

    @classmethod
    def from_config(cls, config: BackendConfig, **kwargs: Any) -> "RestDataSource":
        if not config.url:
            raise ValueError("backend.url must be configured to use the REST backend")
        return cls(
            config.url,
            api_key=config.api_key(),
            timeout=config.timeout,
            schema_path=config.schema_path,
            **kwargs,
        )

    async def _get(
        self,
        table: str,
        params: Mapping[str, str],
        row_range: Optional[Tuple[int, int]] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        headers = dict(self.headers)
        if row_range is not None:
            start, end = row_range
            headers["Range-Unit"] = "items"
            headers["Range"] = f"{start}-{end}"
            headers["Prefer"] = "count=exact"

        logger.debug("GET %s %s", table, params)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(
                    f"{self.base_url}/{table}",
                    params=params,
                    headers=headers,
                )
                response.raise_for_status()
                rows = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DataSourceError(f"Request to '{table}' failed: {exc}") from exc
        except ValueError as exc:
            raise DataSourceError(f"Invalid JSON returned by '{table}'") from exc

        if not isinstance(rows, list):
            raise DataSourceError(f"Unexpected payload returned by '{table}'")
        return rows, parse_content_range(response.headers.get("Content-Range"))

    async def fetch_bids(self, rfq_id: str) -> List[Bid]:
        bid_rows, _ = await self._get(
            "bids",
            {"select": "*", "rfq_id": f"eq.{rfq_id}", "order": "submitted_at.desc"},
        )
        if not bid_rows:
            return []

        vendor_ids = sorted({str(row["vendor_id"]) for row in bid_rows if row.get("vendor_id")})
        profiles: List[Dict[str, Any]] = []
        metrics: List[Dict[str, Any]] = []
        if vendor_ids:
            id_list = f"in.({','.join(vendor_ids)})"
            (profiles, _), (metrics, _) = await asyncio.gather(
                self._get(
                    "user_profiles",
                    {"select": ",".join(("user_id", *PROFILE_FIELDS)), "user_id": id_list},
                ),
                self._get(
                    "vendor_performance_metrics",
                    {"select": ",".join(("vendor_id", *METRIC_FIELDS)), "vendor_id": id_list},
                ),
            )
        logger.info("Fetched %d bids for RFQ %s", len(bid_rows), rfq_id)
        return _join(bid_rows, profiles, metrics)

    async def fetch_entities(
        self,
        entity_type: str,
        filters: SearchFilters,
        offset: int,
        limit: int,
    ) -> EntityPage:
        table, params = self._entity_query(entity_type, filters)
        rows, total = await self._get(table, params, row_range=(offset, offset + limit - 1))
        if total is None:
            total = offset + len(rows)
        return EntityPage(records=_shape(entity_type, rows), total=total)

    def _entity_query(self, entity_type: str, filters: SearchFilters) -> Tuple[str, Dict[str, str]]:
        if entity_type == "requests":
            params = {"select": REQUEST_SELECT, "order": "created_at.desc"}
            if is_constrained(filters.category):
                params["category"] = f"ilike.{filters.category}"
            if is_constrained(filters.urgency):
                params["urgency"] = f"ilike.{filters.urgency}"
            if is_constrained(filters.status):
                params["status"] = f"ilike.{filters.status}"
            if self.approved_requests_only:
                params["admin_approval_status"] = "eq.approved"
            return "requests", params
        if entity_type == "offers":
            params = {"select": OFFER_SELECT, "order": "created_at.desc"}
            if is_constrained(filters.category):
                params["requests.category"] = f"ilike.{filters.category}"
            return "offers", params
        if entity_type == "vendors":
            params = {
                "select": VENDOR_SELECT,
                "role": "eq.vendor",
                "status": "eq.approved",
                "order": "created_at.desc",
            }
            return "user_profiles_with_roles", params
        raise DataSourceError(f"Unknown entity type '{entity_type}'")


def _join(
    bid_rows: Sequence[Mapping[str, Any]],
    profiles: Sequence[Mapping[str, Any]],
    metrics: Sequence[Mapping[str, Any]],
) -> List[Bid]:
    try:
        return join_vendor_records(bid_rows, profiles, metrics)
    except (KeyError, ValueError) as exc:
        raise DataSourceError(f"Malformed bid row: {exc}") from exc


def _shape(entity_type: str, rows: Sequence[Mapping[str, Any]]) -> List[Candidate]:
    try:
        return shape_candidates(entity_type, rows)
    except (KeyError, ValueError) as exc:
        raise DataSourceError(f"Malformed {entity_type} row: {exc}") from exc


def parse_content_range(value: Optional[str]) -> Optional[int]:
    """Extract the total from a ``Content-Range`` header such as ``0-24/25``."""

    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        return None
    return int(total)


__all__ = [
    "DataSource",
    "DataSourceError",
    "EntityPage",
    "InMemoryDataSource",
    "RestDataSource",
    "parse_content_range",
]
