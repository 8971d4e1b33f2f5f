from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List
import sys

import pytest

# Ensure project root is on sys.path for absolute imports
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from rfqdesk.backend import InMemoryDataSource
from rfqdesk.models import Bid, Candidate

SAMPLE_DATA = ROOT / "sample_data"


@pytest.fixture
def make_bid() -> Callable[..., Bid]:
    def _make(bid_id: str = "bid", **overrides) -> Bid:
        values = {
            "id": bid_id,
            "rfq_id": "rfq-1",
            "total_price": 100000.0,
            "delivery_timeline_days": 30,
            "vendor_quality_score": 4.0,
            "vendor_completion_rate": 90.0,
        }
        values.update(overrides)
        return Bid(**values)

    return _make


@pytest.fixture
def make_candidate() -> Callable[..., Candidate]:
    def _make(candidate_id: str = "c", **overrides) -> Candidate:
        values = {
            "id": candidate_id,
            "type": "request",
            "title": "Generic item",
            "description": "",
            "status": "active",
            "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        }
        values.update(overrides)
        return Candidate(**values)

    return _make


@pytest.fixture
def marketplace_path() -> Path:
    return SAMPLE_DATA / "marketplace.json"


@pytest.fixture
def bids_csv_path() -> Path:
    return SAMPLE_DATA / "bids.csv"


@pytest.fixture
def marketplace(marketplace_path: Path) -> InMemoryDataSource:
    return InMemoryDataSource.from_json(marketplace_path)


def numbered_requests(count: int) -> List[dict]:
    """Request rows with strictly decreasing creation dates."""

    return [
        {
            "id": f"req-{index:02d}",
            "title": f"Request {index}",
            "description": "Routine procurement",
            "category": "Manufacturing",
            "status": "active",
            "created_at": f"2024-01-{31 - index:02d}T00:00:00Z",
        }
        for index in range(1, count + 1)
    ]
