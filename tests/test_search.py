import math
from datetime import datetime, timezone

import pytest

from rfqdesk.models import SearchFilters
from rfqdesk.search import (
    KeywordRelevanceScorer,
    TfidfRelevanceScorer,
    create_relevance_scorer,
    filter_and_rank,
    matches_filters,
    matches_query,
    paginate,
    rank_results,
    total_pages,
)


def test_query_matches_title_description_and_tags(make_candidate):
    candidate = make_candidate(
        title="Industrial Pumps",
        description="Centrifugal units",
        tags=("water",),
    )
    assert matches_query(candidate, "PUMPS")
    assert matches_query(candidate, "centrifugal")
    assert matches_query(candidate, "water")
    assert matches_query(candidate, "units pumps")
    assert not matches_query(candidate, "cabling")


def test_categorical_filters_are_exact_and_case_insensitive(make_candidate):
    candidate = make_candidate(categories=("Manufacturing",), location="Riyadh", urgency="high")

    assert matches_filters(candidate, SearchFilters(category="manufacturing"))
    assert not matches_filters(candidate, SearchFilters(category="Logistics"))
    assert matches_filters(candidate, SearchFilters(category="All Categories"))
    assert matches_filters(candidate, SearchFilters(location="riyadh"))
    assert not matches_filters(candidate, SearchFilters(location="Riyadh North"))
    assert matches_filters(candidate, SearchFilters(urgency="High"))
    assert matches_filters(candidate, SearchFilters(urgency="Any Urgency"))
    assert not matches_filters(candidate, SearchFilters(urgency="low"))


def test_vendor_matches_any_of_its_categories(make_candidate):
    vendor = make_candidate(type="vendor", categories=("Design", "Marketing"))
    assert matches_filters(vendor, SearchFilters(category="Marketing"))


def test_budget_range_is_inclusive_and_ignores_unpriced(make_candidate):
    filters = SearchFilters(budget_range=(100.0, 500.0))

    assert matches_filters(make_candidate(price=100.0), filters)
    assert matches_filters(make_candidate(price=500.0), filters)
    assert not matches_filters(make_candidate(price=500.01), filters)
    assert matches_filters(make_candidate(price=None), filters)


def test_default_budget_range_is_a_no_op(make_candidate):
    expensive = make_candidate(price=1_000_000.0)
    assert matches_filters(expensive, SearchFilters())
    assert matches_filters(expensive, SearchFilters(budget_range=(0.0, math.inf)))


def test_rating_threshold(make_candidate):
    filters = SearchFilters(rating=4.0)
    assert matches_filters(make_candidate(rating=4.0), filters)
    assert not matches_filters(make_candidate(rating=3.9), filters)
    assert not matches_filters(make_candidate(rating=None), filters)
    assert matches_filters(make_candidate(rating=None), SearchFilters(rating=0))


def test_availability_toggle(make_candidate):
    filters = SearchFilters(availability=True)
    assert matches_filters(make_candidate(available=True), filters)
    assert not matches_filters(make_candidate(available=False), filters)


def test_tags_use_or_semantics(make_candidate):
    filters = SearchFilters(tags=("x", "y"))
    assert matches_filters(make_candidate(tags=("x",)), filters)
    assert matches_filters(make_candidate(tags=("Y", "z")), filters)
    assert not matches_filters(make_candidate(tags=("z",)), filters)
    assert not matches_filters(make_candidate(tags=()), filters)


def test_status_filter(make_candidate):
    assert matches_filters(make_candidate(status="active"), SearchFilters(status="Active"))
    assert not matches_filters(make_candidate(status="pending"), SearchFilters(status="active"))


def test_keyword_relevance_for_empty_query(make_candidate):
    assert KeywordRelevanceScorer.score_one("", make_candidate()) == 100


def test_keyword_relevance_rewards_title_matches(make_candidate):
    exact = make_candidate(title="pumps")
    prefix = make_candidate(title="pumps and valves")
    description_only = make_candidate(title="valves", description="spare pumps included")

    scorer = KeywordRelevanceScorer()
    exact_score, prefix_score, description_score = scorer.score(
        "pumps", [exact, prefix, description_only]
    )

    assert exact_score == 100
    assert prefix_score == 100
    # description contains the query (30) and a description word contains it (8)
    assert description_score == 38


def test_keyword_relevance_counts_categories_and_words(make_candidate):
    candidate = make_candidate(
        title="Network upgrade",
        description="Cabling for offices",
        categories=("Technology",),
    )
    # category phrase (40) and category word (20); title and description miss
    assert KeywordRelevanceScorer.score_one("tech", candidate) == 60
    # title contains (80) and exact title word (25), clamped
    assert KeywordRelevanceScorer.score_one("upgrade", candidate) == 100


def test_keyword_relevance_category_and_tag_terms_for_offers_and_vendors(make_candidate):
    offer = make_candidate(type="offer", title="Package", categories=("Logistics",))
    vendor = make_candidate(type="vendor", title="Nasser", categories=("Design", "Logistics"))
    tagged = make_candidate(type="vendor", title="Nasser", tags=("logistics",))

    # category phrase (40) and category word (20)
    assert KeywordRelevanceScorer.score_one("logistics", offer) == 60
    assert KeywordRelevanceScorer.score_one("logistics", vendor) == 60
    # tag hit only
    assert KeywordRelevanceScorer.score_one("logistics", tagged) == 40


def test_keyword_relevance_is_clamped(make_candidate):
    candidate = make_candidate(title="xyz", description="nothing here")
    assert KeywordRelevanceScorer.score_one("unrelated words", candidate) == 0


def test_tfidf_relevance_prefers_closer_text(make_candidate):
    scorer = TfidfRelevanceScorer()
    scores = scorer.score(
        "centrifugal pumps",
        [
            make_candidate("a", title="Centrifugal pumps supply"),
            make_candidate("b", title="Office furniture"),
        ],
    )
    assert scores[0] > scores[1]
    assert all(0 <= value <= 100 for value in scores)


def test_tfidf_relevance_handles_blank_inputs(make_candidate):
    scorer = TfidfRelevanceScorer()
    assert scorer.score("pumps", []) == []
    assert scorer.score("  ", [make_candidate()]) == [100]
    assert scorer.score("pumps", [make_candidate(title="")]) == [0]


def test_create_relevance_scorer_falls_back_to_keyword():
    assert isinstance(create_relevance_scorer("tfidf"), TfidfRelevanceScorer)
    assert isinstance(create_relevance_scorer("mystery"), KeywordRelevanceScorer)
    assert isinstance(create_relevance_scorer(None), KeywordRelevanceScorer)


def test_filter_and_rank_orders_by_relevance_then_recency(make_candidate):
    older = make_candidate("older", title="Pumps", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    newer = make_candidate("newer", title="Pumps", created_at=datetime(2024, 2, 1, tzinfo=timezone.utc))
    weaker = make_candidate("weaker", title="Valves", description="pumps too")
    excluded = make_candidate("excluded", title="Valves")

    results = filter_and_rank([older, weaker, excluded, newer], SearchFilters(query="pumps"))

    assert [result.id for result in results] == ["newer", "older", "weaker"]
    assert results[0].relevance == 100


def test_rank_results_by_price_keeps_unpriced_last(make_candidate):
    results = filter_and_rank(
        [
            make_candidate("none", price=None),
            make_candidate("cheap", price=10.0),
            make_candidate("dear", price=99.0),
        ],
        SearchFilters(),
    )
    ascending = rank_results(results, sort_by="price", order="asc")
    descending = rank_results(results, sort_by="price", order="desc")

    assert [result.id for result in ascending] == ["cheap", "dear", "none"]
    assert [result.id for result in descending] == ["dear", "cheap", "none"]


def test_rank_results_rejects_unknown_key():
    with pytest.raises(ValueError):
        rank_results([], sort_by="popularity")


def test_paginate_returns_requested_slice(make_candidate):
    results = filter_and_rank(
        [make_candidate(f"c{index:02d}") for index in range(1, 26)],
        SearchFilters(),
        sort_by="created_at",
    )
    page = paginate(results, page=2, page_size=10)

    assert [result.id for result in page] == [result.id for result in results[10:20]]
    assert len(paginate(results, page=3, page_size=10)) == 5
    assert paginate(results, page=4, page_size=10) == []
    assert total_pages(25, 10) == 3
    assert total_pages(0, 10) == 0


def test_paginate_rejects_invalid_pages():
    with pytest.raises(ValueError):
        paginate([], page=0, page_size=10)
    with pytest.raises(ValueError):
        paginate([], page=1, page_size=0)
