import json
from datetime import datetime, timezone

import pandas as pd
import pytest

from rfqdesk.io import (
    bid_from_record,
    coerce_numeric,
    load_bid_dataset,
    parse_timestamp,
    shape_candidates,
    to_int,
    to_number,
)
from rfqdesk.scoring import analyze_bids, score_bid


def test_coerce_numeric_handles_currency_and_separators():
    series = pd.Series(
        ["120,000 SAR", "95 000", "1 234,50", "1.234,50 €", "$1,234.50", "150000.00", "n/a", ""]
    )
    result = coerce_numeric(series)

    assert result.iloc[0] == pytest.approx(120000.0)
    assert result.iloc[1] == pytest.approx(95000.0)
    assert result.iloc[2] == pytest.approx(1234.5)
    assert result.iloc[3] == pytest.approx(1234.5)
    assert result.iloc[4] == pytest.approx(1234.5)
    assert result.iloc[5] == pytest.approx(150000.0)
    assert pd.isna(result.iloc[6])
    assert pd.isna(result.iloc[7])


def test_scalar_conversions():
    assert to_number("7,500 SAR") == pytest.approx(7500.0)
    assert to_number(float("nan")) is None
    assert to_number(None) is None
    assert to_number(True) is None
    assert to_int("44.6") == 45
    assert to_int("") is None


def test_parse_timestamp_is_timezone_aware():
    stamp = parse_timestamp("2024-03-01T09:00:00Z")
    assert stamp == datetime(2024, 3, 1, 9, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None


def test_load_bid_dataset_from_csv(bids_csv_path):
    bids = load_bid_dataset(bids_csv_path)

    assert [bid.id for bid in bids] == ["bid-1", "bid-2", "bid-3", "bid-4"]
    assert [bid.total_price for bid in bids] == [120000.0, 95000.0, 150000.0, 80000.0]
    assert bids[0].vendor_label == "Harbi Industrial"
    assert bids[0].warranty_period_months == 12
    assert bids[1].warranty_period_months is None
    assert bids[3].vendor_label == "Yousef Karim"
    assert bids[3].vendor_quality_score is None

    assert [score_bid(bid) for bid in bids] == [86, 80, 90, 0]
    analytics = analyze_bids(bids)
    assert analytics.average_price == 111250
    assert analytics.average_timeline == 39


def test_load_bid_dataset_from_json_filters_rfq(marketplace_path):
    bids = load_bid_dataset(marketplace_path, rfq_id="rfq-2")
    assert [bid.id for bid in bids] == ["bid-5"]
    assert bids[0].vendor_quality_score is None


def test_load_bid_dataset_requires_columns(tmp_path):
    path = tmp_path / "bids.csv"
    pd.DataFrame({"id": ["b1"], "total_price": ["10"]}).to_csv(path, index=False)
    with pytest.raises(KeyError):
        load_bid_dataset(path)


def test_load_bid_dataset_rejects_unknown_extension(tmp_path):
    path = tmp_path / "bids.xlsx"
    path.write_bytes(b"")
    with pytest.raises(ValueError):
        load_bid_dataset(path)
    with pytest.raises(FileNotFoundError):
        load_bid_dataset(tmp_path / "missing.csv")


def test_bid_from_record_validates_required_fields():
    with pytest.raises(KeyError):
        bid_from_record({"id": "b1", "total_price": 10})
    with pytest.raises(ValueError):
        bid_from_record({"id": "b1", "total_price": "lots", "delivery_timeline_days": 5})


def test_bid_from_record_prefers_joined_vendor_rows():
    bid = bid_from_record(
        {"id": "b1", "vendor_id": "v-1", "total_price": 10, "delivery_timeline_days": 5},
        profile={"full_name": "Sara", "company_name": ""},
        metrics={"quality_score": "4.5", "completion_rate": 90},
    )
    assert bid.vendor_label == "Sara"
    assert bid.vendor_quality_score == pytest.approx(4.5)
    assert bid.status == "submitted"
    assert bid.currency == "SAR"


def test_shape_candidates_normalises_each_entity_type(marketplace_path):
    payload = json.loads(marketplace_path.read_text(encoding="utf-8"))

    (request, *_rest) = shape_candidates("requests", payload["requests"])
    assert request.type == "request"
    assert request.price == pytest.approx(8000.0)
    assert request.categories == ("Manufacturing",)
    assert request.tags == ("pumps", "water")
    assert request.available is True

    (offer,) = shape_candidates("offers", payload["offers"])
    assert offer.type == "offer"
    assert offer.location == "Riyadh"
    assert offer.categories == ("Manufacturing",)
    assert offer.metadata["delivery_time_days"] == 21

    vendors = shape_candidates("vendors", payload["vendors"])
    assert vendors[0].title == "Sara Al-Harbi"
    assert vendors[0].rating == pytest.approx(4.6)
    assert vendors[1].available is False

    with pytest.raises(ValueError):
        shape_candidates("auctions", [])


def test_vendor_without_name_or_bio_gets_placeholders():
    (vendor,) = shape_candidates("vendors", [{"id": "v-7", "tags": "a, b"}])
    assert vendor.title == "Unnamed Vendor"
    assert vendor.description == "No description available"
    assert vendor.tags == ("a", "b")
