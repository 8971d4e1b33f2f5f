"""RFQ Desk core package.

This package holds the algorithmic core of the procurement marketplace: the
composite scoring, comparison and analytics of supplier bids for a request for
quotation, and the multi-criteria search pipeline over requests, offers and
vendors.  Persistence and business workflows stay with the hosted backend,
which is reached through :mod:`rfqdesk.backend`.
"""

from .backend import DataSource, DataSourceError, EntityPage, InMemoryDataSource, RestDataSource
from .config import (
    AppConfig,
    BackendConfig,
    OutputConfig,
    ScoringConfig,
    SearchConfig,
    load_config,
)
from .export import export_bid_report, export_search_results, results_to_csv
from .models import Bid, Candidate, SearchFilters, SearchResult
from .scoring import (
    analyze_bids,
    compare_bids,
    filter_and_sort_bids,
    rank_bids,
    score_bid,
)
from .search import SearchEngine, SearchSnapshot, SearchState, paginate

__all__ = [
    "AppConfig",
    "BackendConfig",
    "Bid",
    "Candidate",
    "DataSource",
    "DataSourceError",
    "EntityPage",
    "InMemoryDataSource",
    "OutputConfig",
    "RestDataSource",
    "ScoringConfig",
    "SearchConfig",
    "SearchEngine",
    "SearchFilters",
    "SearchResult",
    "SearchSnapshot",
    "SearchState",
    "analyze_bids",
    "compare_bids",
    "export_bid_report",
    "export_search_results",
    "filter_and_sort_bids",
    "load_config",
    "paginate",
    "rank_bids",
    "results_to_csv",
    "score_bid",
]
