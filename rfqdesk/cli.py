"""Command line interface for ranking bids and searching the marketplace."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from .backend import DataSource, DataSourceError, InMemoryDataSource, RestDataSource
from .config import AppConfig, load_config
from .export import export_bid_report, export_search_results
from .formatting import format_date, format_float, format_price
from .io import load_bid_dataset
from .models import ENTITY_TYPES, Bid, SearchFilters
from .scoring import SORT_KEYS, analyze_bids, compare_bids, filter_and_sort_bids, rank_bids
from .search import RESULT_SORT_KEYS, SearchEngine, SearchState

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Rank RFQ bids and search the procurement marketplace")
    parser.add_argument("--config", type=Path, help="Path to YAML configuration")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rank = subparsers.add_parser("rank", help="Score and rank the bids of one RFQ")
    source = rank.add_mutually_exclusive_group(required=True)
    source.add_argument("--rfq", help="RFQ identifier to fetch from the backend")
    source.add_argument("--bids", type=Path, help="Local CSV/JSON bid export")
    rank.add_argument("--rfq-id", help="Restrict a local export to this RFQ")
    rank.add_argument("--status", default="all", help="Only keep bids with this status")
    rank.add_argument(
        "--sort-by",
        choices=SORT_KEYS,
        help="List bids in this order instead of best score first",
    )
    rank.add_argument("--order", choices=("asc", "desc"), default="asc")
    rank.add_argument("--compare", nargs="+", default=[], help="Bid ids to compare side by side")
    rank.add_argument("--output-dir", type=Path, help="Directory for generated reports")
    rank.add_argument("--quiet", action="store_true", help="Suppress console summary output")

    search = subparsers.add_parser("search", help="Search requests, offers and vendors")
    search.add_argument("--data", type=Path, help="JSON marketplace export instead of the backend")
    search.add_argument("--query", default="")
    search.add_argument("--category", default="")
    search.add_argument("--location", default="")
    search.add_argument("--urgency", default="")
    search.add_argument("--status")
    search.add_argument("--budget-min", default=0)
    search.add_argument("--budget-max")
    search.add_argument("--rating", default=0)
    search.add_argument("--available", action="store_true", help="Only currently available entities")
    search.add_argument("--tag", action="append", default=[], help="Tag filter (repeatable, any match)")
    search.add_argument("--type", dest="entity_type", choices=ENTITY_TYPES, default="all")
    search.add_argument("--sort-by", choices=RESULT_SORT_KEYS, default="relevance")
    search.add_argument("--order", choices=("asc", "desc"), default="desc")
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--page-size", type=int)
    search.add_argument("--export", action="store_true", help="Write the page to a CSV file")
    search.add_argument("--output-dir", type=Path, help="Directory for the CSV export")
    search.add_argument("--quiet", action="store_true", help="Suppress console output")
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    try:
        config = load_config(args.config)
        if args.output_dir:
            config.output.directory = _resolve_override_path(args.output_dir)
    except Exception as exc:  # pragma: no cover - CLI validation
        logger.error("Failed to load configuration: %s", exc)
        return 1

    if args.command == "rank":
        return _run_rank(args, config)
    return _run_search(args, config)


def _run_rank(args: argparse.Namespace, config: AppConfig) -> int:
    try:
        bids = _load_bids(args, config)
    except (DataSourceError, FileNotFoundError, KeyError, ValueError) as exc:
        logger.error("Failed to load bids: %s", exc)
        return 1

    if not bids:
        logger.warning("No bids found")
        return 0

    visible = filter_and_sort_bids(bids, status=args.status, sort_by=args.sort_by, order=args.order)
    ranking = rank_bids(visible, config.scoring, keep_order=args.sort_by is not None)
    analytics = analyze_bids(visible)
    comparison = compare_bids(bids, args.compare, config.scoring)

    try:
        export_bid_report(
            ranking,
            analytics,
            config.output,
            comparison=comparison,
            metadata={
                "rfq_id": args.rfq or args.rfq_id,
                "status_filter": args.status,
                "sort_by": args.sort_by,
                "order": args.order,
            },
        )
    except OSError as exc:
        logger.exception("Failed to export bid reports: %s", exc)
        return 1

    if not args.quiet:
        _print_ranking(visible, ranking, analytics)
    return 0


def _load_bids(args: argparse.Namespace, config: AppConfig) -> List[Bid]:
    if args.bids:
        return load_bid_dataset(args.bids, rfq_id=args.rfq_id)
    source = RestDataSource.from_config(config.backend)
    return asyncio.run(source.fetch_bids(args.rfq))


def _run_search(args: argparse.Namespace, config: AppConfig) -> int:
    budget_max = args.budget_max if args.budget_max is not None else config.search.budget_ceiling
    try:
        filters = SearchFilters.from_mapping(
            {
                "query": args.query,
                "category": args.category,
                "location": args.location,
                "urgency": args.urgency,
                "status": args.status,
                "budget_range": [args.budget_min, budget_max],
                "rating": args.rating,
                "availability": args.available,
                "tags": args.tag,
                "entity_type": args.entity_type,
            }
        )
        source = _build_data_source(args, config)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("Invalid search request: %s", exc)
        return 1

    engine = SearchEngine(source, config.search)
    try:
        snapshot = asyncio.run(
            engine.search(
                filters,
                page=args.page,
                page_size=args.page_size,
                sort_by=args.sort_by,
                order=args.order,
            )
        )
    except ValueError as exc:
        logger.error("Invalid search request: %s", exc)
        return 1

    if snapshot.state is SearchState.ERROR:
        logger.error("Search failed: %s", snapshot.error)
        return 1

    if args.export:
        export_search_results(snapshot.results, config.output)

    if not args.quiet:
        _print_results(snapshot)
    return 0


def _build_data_source(args: argparse.Namespace, config: AppConfig) -> DataSource:
    if args.data:
        return InMemoryDataSource.from_json(args.data)
    return RestDataSource.from_config(config.backend)


def _resolve_override_path(path: Path) -> Path:
    path = Path(path).expanduser()
    if path.is_absolute():
        return path
    return (Path.cwd() / path).resolve()


def _print_ranking(bids: Sequence[Bid], ranking: pd.DataFrame, analytics) -> None:
    table = ranking[["rank", "vendor", "status", "total_price", "delivery_timeline_days", "score"]].copy()
    table["total_price"] = table["total_price"].apply(format_float)
    print("Bid ranking:")
    print(table.to_string(index=False))
    currency = bids[0].currency if bids else None
    print(
        f"{analytics.count} bids | average price {format_price(analytics.average_price, currency) or '-'}"
        f" | average timeline {analytics.average_timeline} days"
    )


def _print_results(snapshot) -> None:
    if not snapshot.results:
        print("No results found.")
        return
    rows = [
        {
            "type": result.type,
            "title": result.title,
            "location": result.location or "",
            "price": format_price(result.price, result.currency) or "",
            "created": format_date(result.created_at),
            "relevance": f"{result.relevance}%",
        }
        for result in snapshot.results
    ]
    print(pd.DataFrame(rows).to_string(index=False))
    pages = max(1, snapshot.total_pages)
    print(f"Page {snapshot.page} of {pages} ({snapshot.total_count} results)")


if __name__ == "__main__":  # pragma: no cover - manual execution entry point
    raise SystemExit(main())
