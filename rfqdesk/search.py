"""Filtering, relevance ranking and pagination of marketplace search results."""

from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import linear_kernel

from .backend import DataSource, DataSourceError
from .config import SearchConfig
from .models import (
    DEFAULT_BUDGET_CEILING,
    Candidate,
    SearchFilters,
    SearchResult,
    is_constrained,
)

logger = logging.getLogger(__name__)

RESULT_SORT_KEYS = ("relevance", "created_at", "price")
RESULT_SORT_ORDERS = ("asc", "desc")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class RelevanceScorer(ABC):
    """Assigns each candidate a relevance in ``[0, 100]`` for a query."""

    @abstractmethod
    def score(self, query: str, candidates: Sequence[Candidate]) -> List[int]:
        """Return one relevance value per candidate, in input order."""


class KeywordRelevanceScorer(RelevanceScorer):
    """Additive keyword scoring over title, categories, tags and description.

    Category terms apply to every entity type through its normalised
    categories: a request's own category, the category of the request an
    offer answers, or a vendor's service categories.
    """

    def score(self, query: str, candidates: Sequence[Candidate]) -> List[int]:
        return [self.score_one(query, candidate) for candidate in candidates]

    @staticmethod
    def score_one(query: str, candidate: Candidate) -> int:
        query_lower = (query or "").strip().lower()
        if not query_lower:
            return 100

        title = candidate.title.lower()
        description = candidate.description.lower()
        category = " ".join(candidate.categories).lower()
        tags = [tag.lower() for tag in candidate.tags]

        score = 0
        if title == query_lower:
            score += 100
        elif query_lower in title:
            score += 80
        if title.startswith(query_lower):
            score += 60
        if query_lower in category:
            score += 40
        if any(query_lower in tag for tag in tags):
            score += 40
        if query_lower in description:
            score += 30

        query_words = [word for word in query_lower.split() if len(word) > 2]
        title_words = title.split()
        description_words = description.split()
        for word in query_words:
            if word in title_words:
                score += 25
            elif any(word in title_word for title_word in title_words):
                score += 15
            if any(word in description_word for description_word in description_words):
                score += 8
            if word in category:
                score += 20

        matching = [word for word in query_words if word in title or word in description]
        if len(matching) > 1:
            score += len(matching) * 5

        return min(100, max(0, score))


class TfidfRelevanceScorer(RelevanceScorer):
    """Character n-gram TF-IDF similarity scaled to ``[0, 100]``."""

    def __init__(self) -> None:
        self._vectorizer = TfidfVectorizer(analyzer="char_wb", ngram_range=(3, 5), min_df=1)

    def score(self, query: str, candidates: Sequence[Candidate]) -> List[int]:
        if not candidates:
            return []
        if not (query or "").strip():
            return [100 for _ in candidates]

        corpus = [candidate_text(candidate).lower() for candidate in candidates]
        if not any(text.strip() for text in corpus):
            return [0 for _ in candidates]

        matrix = self._vectorizer.fit_transform(corpus)
        query_vector = self._vectorizer.transform([query.strip().lower()])
        similarities = linear_kernel(query_vector, matrix).flatten()
        return [min(100, max(0, int(math.floor(value * 100 + 0.5)))) for value in similarities]


def create_relevance_scorer(name: Optional[str]) -> RelevanceScorer:
    """Instantiate a relevance scorer by name, falling back to keyword scoring."""

    name = (name or "keyword").lower()
    if name in {"keyword", "keywords", "default"}:
        return KeywordRelevanceScorer()
    if name in {"tfidf", "tf-idf"}:
        return TfidfRelevanceScorer()

    logger.warning("Unknown relevance scorer '%s'; falling back to keyword scoring", name)
    return KeywordRelevanceScorer()


def candidate_text(candidate: Candidate) -> str:
    parts = [candidate.title, candidate.description, *candidate.categories, *candidate.tags]
    return " ".join(part for part in parts if part)


def matches_query(candidate: Candidate, query: str) -> bool:
    """Case-insensitive substring match, or every query token present."""

    query_lower = (query or "").strip().lower()
    if not query_lower:
        return True
    haystack = candidate_text(candidate).lower()
    if query_lower in haystack:
        return True
    return all(token in haystack for token in query_lower.split())


def _equals(value: Optional[str], expected: str) -> bool:
    return value is not None and value.strip().lower() == expected.strip().lower()


def matches_filters(
    candidate: Candidate,
    filters: SearchFilters,
    budget_ceiling: float = DEFAULT_BUDGET_CEILING,
) -> bool:
    """Return ``True`` when ``candidate`` satisfies every active predicate."""

    if not matches_query(candidate, filters.query):
        return False

    if is_constrained(filters.category):
        if not any(_equals(category, filters.category) for category in candidate.categories):
            return False

    if is_constrained(filters.location) and not _equals(candidate.location, filters.location):
        return False

    if is_constrained(filters.urgency) and not _equals(candidate.urgency, filters.urgency):
        return False

    if is_constrained(filters.status) and not _equals(candidate.status, filters.status or ""):
        return False

    if not filters.budget_is_open(budget_ceiling) and candidate.price is not None:
        low, high = filters.budget_range
        if not low <= candidate.price <= high:
            return False

    if filters.rating > 0:
        if candidate.rating is None or candidate.rating < filters.rating:
            return False

    if filters.availability and not candidate.available:
        return False

    if filters.tags:
        wanted = {tag.lower() for tag in filters.tags}
        if not wanted.intersection(tag.lower() for tag in candidate.tags):
            return False

    return True


def to_result(candidate: Candidate, relevance: int) -> SearchResult:
    return SearchResult(
        id=candidate.id,
        type=candidate.type,
        title=candidate.title,
        description=candidate.description,
        status=candidate.status,
        relevance=relevance,
        created_at=candidate.created_at,
        updated_at=candidate.updated_at,
        location=candidate.location,
        price=candidate.price,
        currency=candidate.currency,
        rating=candidate.rating,
        metadata=dict(candidate.metadata),
    )


def _timestamp(value: Optional[datetime]) -> float:
    return (value or _EPOCH).timestamp()


def rank_results(
    results: Iterable[SearchResult],
    sort_by: str = "relevance",
    order: str = "desc",
) -> List[SearchResult]:
    """Order results; relevance ties fall back to the newest first."""

    if sort_by not in RESULT_SORT_KEYS:
        raise ValueError(f"Sort key must be one of {RESULT_SORT_KEYS}, got '{sort_by}'")
    if order not in RESULT_SORT_ORDERS:
        raise ValueError(f"Sort order must be one of {RESULT_SORT_ORDERS}, got '{order}'")

    results = list(results)
    descending = order == "desc"
    if sort_by == "relevance":
        return sorted(
            results,
            key=lambda result: (result.relevance, _timestamp(result.created_at)),
            reverse=descending,
        )
    if sort_by == "created_at":
        return sorted(results, key=lambda result: _timestamp(result.created_at), reverse=descending)

    priced = [result for result in results if result.price is not None]
    unpriced = [result for result in results if result.price is None]
    return sorted(priced, key=lambda result: result.price, reverse=descending) + unpriced


def filter_and_rank(
    candidates: Iterable[Candidate],
    filters: SearchFilters,
    scorer: Optional[RelevanceScorer] = None,
    budget_ceiling: float = DEFAULT_BUDGET_CEILING,
    sort_by: str = "relevance",
    order: str = "desc",
) -> List[SearchResult]:
    """Apply predicates, score relevance and rank, all in memory."""

    scorer = scorer or KeywordRelevanceScorer()
    survivors = [
        candidate
        for candidate in candidates
        if matches_filters(candidate, filters, budget_ceiling)
    ]
    relevance = scorer.score(filters.query, survivors)
    results = [to_result(candidate, value) for candidate, value in zip(survivors, relevance)]
    return rank_results(results, sort_by=sort_by, order=order)


def paginate(results: Sequence[SearchResult], page: int, page_size: int) -> List[SearchResult]:
    """Return the 1-indexed ``page`` of ``results``."""

    _validate_page(page, page_size)
    start = (page - 1) * page_size
    return list(results[start : start + page_size])


def total_pages(total_count: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    return math.ceil(total_count / page_size) if total_count > 0 else 0


def _validate_page(page: int, page_size: int) -> None:
    if page < 1:
        raise ValueError("page must be at least 1")
    if page_size < 1:
        raise ValueError("page_size must be at least 1")


class SearchState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class SearchSnapshot:
    """Observable state of a :class:`SearchEngine`."""

    state: SearchState = SearchState.IDLE
    results: Tuple[SearchResult, ...] = ()
    total_count: int = 0
    page: int = 1
    page_size: int = 20
    error: Optional[str] = None

    @property
    def total_pages(self) -> int:
        return total_pages(self.total_count, self.page_size)


@dataclass(frozen=True)
class Suggestion:
    text: str
    type: str


class SearchEngine:
    """Run searches against a data source and hold the latest visible state.

    Only the most recently started search may commit its outcome; responses
    of superseded searches are dropped.
    """

    def __init__(
        self,
        data_source: DataSource,
        config: Optional[SearchConfig] = None,
        scorer: Optional[RelevanceScorer] = None,
    ) -> None:
        self.data_source = data_source
        self.config = config or SearchConfig()
        self.scorer = scorer or create_relevance_scorer(self.config.relevance)
        self._snapshot = SearchSnapshot(page_size=self.config.page_size)
        self._sequence = 0
        self._history: List[str] = []
        self._locations: Dict[str, None] = {}

    @property
    def snapshot(self) -> SearchSnapshot:
        return self._snapshot

    @property
    def state(self) -> SearchState:
        return self._snapshot.state

    @property
    def results(self) -> List[SearchResult]:
        return list(self._snapshot.results)

    @property
    def total_count(self) -> int:
        return self._snapshot.total_count

    @property
    def history(self) -> List[str]:
        return list(self._history)

    async def search(
        self,
        filters: SearchFilters,
        page: int = 1,
        page_size: Optional[int] = None,
        sort_by: str = "relevance",
        order: str = "desc",
    ) -> SearchSnapshot:
        """Fetch, filter, rank and paginate; returns the visible snapshot."""

        page_size = page_size or self.config.page_size
        _validate_page(page, page_size)
        if sort_by not in RESULT_SORT_KEYS or order not in RESULT_SORT_ORDERS:
            raise ValueError(f"Unsupported ordering '{sort_by} {order}'")

        self._sequence += 1
        sequence = self._sequence
        self._snapshot = SearchSnapshot(
            state=SearchState.LOADING,
            results=self._snapshot.results,
            total_count=self._snapshot.total_count,
            page=page,
            page_size=page_size,
        )

        try:
            batches = await asyncio.gather(
                *(self._collect(entity_type, filters) for entity_type in filters.entity_types())
            )
        except DataSourceError as exc:
            if sequence == self._sequence:
                logger.error("Search failed: %s", exc)
            return self._fail(sequence, page, page_size, exc)
        except Exception as exc:
            if sequence == self._sequence:
                logger.exception("Search #%d raised an unexpected error", sequence)
            return self._fail(sequence, page, page_size, exc)

        if sequence != self._sequence:
            logger.debug("Discarding stale response of search #%d", sequence)
            return self._snapshot

        candidates = [candidate for batch in batches for candidate in batch]
        ranked = filter_and_rank(
            candidates,
            filters,
            scorer=self.scorer,
            budget_ceiling=self.config.budget_ceiling,
            sort_by=sort_by,
            order=order,
        )
        self._remember(filters.query, candidates)
        self._snapshot = SearchSnapshot(
            state=SearchState.READY,
            results=tuple(paginate(ranked, page, page_size)),
            total_count=len(ranked),
            page=page,
            page_size=page_size,
        )
        logger.info(
            "Search #%d matched %d of %d candidates", sequence, len(ranked), len(candidates)
        )
        return self._snapshot

    def _fail(self, sequence: int, page: int, page_size: int, exc: Exception) -> SearchSnapshot:
        if sequence != self._sequence:
            logger.debug("Discarding failure of superseded search #%d", sequence)
            return self._snapshot
        self._snapshot = SearchSnapshot(
            state=SearchState.ERROR,
            page=page,
            page_size=page_size,
            error=str(exc) or type(exc).__name__,
        )
        return self._snapshot

    def clear_results(self) -> None:
        """Reset to ``idle``; searches still in flight will not commit."""

        self._sequence += 1
        self._snapshot = SearchSnapshot(page_size=self.config.page_size)

    def suggest(self, prefix: str) -> List[Suggestion]:
        """Suggest categories, known locations and recent queries for ``prefix``."""

        text = (prefix or "").strip().lower()
        if len(text) < 2:
            return []

        suggestions = [
            Suggestion(category, "category")
            for category in self.config.categories
            if text in category.lower()
        ][:3]
        suggestions.extend(
            [Suggestion(location, "location") for location in self._locations if text in location.lower()][:3]
        )
        suggestions.extend(
            [Suggestion(query, "recent") for query in self._history if text in query.lower()][:2]
        )
        return suggestions[: self.config.max_suggestions]

    async def _collect(self, entity_type: str, filters: SearchFilters) -> List[Candidate]:
        records: List[Candidate] = []
        offset = 0
        while True:
            page = await self.data_source.fetch_entities(
                entity_type, filters, offset, self.config.batch_size
            )
            records.extend(page.records)
            offset += len(page.records)
            if not page.records or offset >= page.total:
                break
        logger.debug("Fetched %d %s", len(records), entity_type)
        return records

    def _remember(self, query: str, candidates: Sequence[Candidate]) -> None:
        for candidate in candidates:
            if candidate.location:
                self._locations.setdefault(candidate.location, None)
        query = (query or "").strip()
        if query:
            self._history = [query, *[item for item in self._history if item != query]]
            del self._history[self.config.history_size :]


__all__ = [
    "KeywordRelevanceScorer",
    "RelevanceScorer",
    "SearchEngine",
    "SearchSnapshot",
    "SearchState",
    "Suggestion",
    "TfidfRelevanceScorer",
    "candidate_text",
    "create_relevance_scorer",
    "filter_and_rank",
    "matches_filters",
    "matches_query",
    "paginate",
    "rank_results",
    "total_pages",
]
