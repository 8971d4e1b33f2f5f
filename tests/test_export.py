import json
from datetime import date, datetime, timezone

import pandas as pd

from rfqdesk.config import OutputConfig
from rfqdesk.export import (
    SEARCH_EXPORT_COLUMNS,
    export_bid_report,
    export_search_results,
    results_to_csv,
    results_to_rows,
)
from rfqdesk.models import SearchResult
from rfqdesk.scoring import analyze_bids, compare_bids, rank_bids


def _result(**overrides) -> SearchResult:
    values = {
        "id": "req-1",
        "type": "request",
        "title": 'Pumps, "industrial"',
        "description": "Centrifugal",
        "status": "active",
        "relevance": 85,
        "created_at": datetime(2024, 5, 1, 10, tzinfo=timezone.utc),
        "location": "Riyadh",
        "price": 8000.0,
        "currency": "SAR",
    }
    values.update(overrides)
    return SearchResult(**values)


def test_rows_follow_export_columns():
    (row,) = results_to_rows([_result(location=None, price=None)])

    assert list(row) == SEARCH_EXPORT_COLUMNS
    assert row["Relevance"] == "85%"
    assert row["Location"] == ""
    assert row["Price"] == ""
    assert row["Created At"] == "2024-05-01T10:00:00+00:00"


def test_csv_quotes_every_field():
    text = results_to_csv([_result()])
    header, line = text.strip().split("\n")

    assert header == ",".join(f'"{column}"' for column in SEARCH_EXPORT_COLUMNS)
    assert line.startswith('"request","Pumps, ""industrial""","Centrifugal","Riyadh","8000","active"')
    assert line.endswith('"85%"')


def test_csv_for_empty_results_has_header_only():
    assert results_to_csv([]).strip() == ",".join(f'"{column}"' for column in SEARCH_EXPORT_COLUMNS)


def test_export_search_results_names_file_by_date(tmp_path):
    output = OutputConfig(directory=tmp_path / "exports")
    path = export_search_results([_result()], output, today=date(2024, 6, 30))

    assert path == tmp_path / "exports" / "search_results_2024-06-30.csv"
    frame = pd.read_csv(path)
    assert list(frame.columns) == SEARCH_EXPORT_COLUMNS
    assert frame.loc[0, "Title"] == 'Pumps, "industrial"'


def test_export_bid_report_writes_all_artifacts(tmp_path, make_bid):
    bids = [make_bid("a", total_price=100), make_bid("b", total_price=50)]
    ranking = rank_bids(bids)
    analytics = analyze_bids(bids)
    comparison = compare_bids(bids, ["a", "b"])

    paths = export_bid_report(
        ranking,
        analytics,
        OutputConfig(directory=tmp_path),
        comparison=comparison,
        metadata={"rfq_id": "rfq-1"},
    )

    assert set(paths) == {"ranking", "comparison", "analytics"}
    assert list(pd.read_csv(paths["ranking"])["bid_id"]) == list(ranking["bid_id"])
    assert list(pd.read_csv(paths["comparison"])["bid_id"]) == ["a", "b"]

    audit = json.loads(paths["analytics"].read_text(encoding="utf-8"))
    assert audit["rfq_id"] == "rfq-1"
    assert audit["analytics"]["count"] == 2
    assert audit["analytics"]["average_price"] == 75
    assert len(audit["ranking"]) == 2


def test_export_bid_report_skips_empty_comparison(tmp_path, make_bid):
    bids = [make_bid("a")]
    paths = export_bid_report(rank_bids(bids), analyze_bids(bids), OutputConfig(directory=tmp_path))

    assert "comparison" not in paths
    assert not (tmp_path / "bid_comparison.csv").exists()
