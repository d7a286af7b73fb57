"""End-to-end pipeline tests with a mock classifier and the in-memory store."""

import threading

import pytest

from scout.audit import InMemoryAuditLog
from scout.cache import QueryCache
from scout.errors import ParameterValidationError, PersistenceError, SearchCancelled
from scout.events import SearchStage
from scout.models import Range, SearchParameters
from scout.orchestrator import (
    SearchContext,
    SearchOrchestrator,
    broaden_suggestion,
    generate_suggestions,
    narrow_suggestions,
)
from scout.query_parser import QueryClassifier

ALL_STAGES = [
    SearchStage.STARTED,
    SearchStage.CLASSIFYING,
    SearchStage.VALIDATING,
    SearchStage.PERSISTENCE_QUERY,
    SearchStage.EXPLANATION_GENERATION,
    SearchStage.RESULTS,
    SearchStage.COMPLETED,
]


class BrokenRepository:
    def search(self, spec):
        raise RuntimeError("connection refused")

    def distinct_values(self, field):
        return []


class BrokenAuditLog:
    def record_query(self, record):
        raise OSError("disk full")

    def record_results(self, records):
        raise OSError("disk full")


@pytest.fixture
def audit_log():
    return InMemoryAuditLog()


@pytest.fixture
def orchestrator(query_parser, repository, audit_log, scorer, settings):
    return SearchOrchestrator(query_parser, repository, audit_log=audit_log, scorer=scorer, settings=settings)


class TestFreeTextSearch:
    def test_ranked_results(self, orchestrator):
        response = orchestrator.search("young striker under 25")

        assert {r.candidate.id for r in response.results} == {"a", "b"}
        assert [r.rank for r in response.results] == [1, 2]
        percentages = [r.score.percentage for r in response.results]
        assert percentages == sorted(percentages, reverse=True)
        assert response.pagination.total == 2
        assert response.parameters.position == ("ST", "CF")
        assert response.parameters.original_query == "young striker under 25"

    def test_summary(self, orchestrator):
        summary = orchestrator.search("young striker under 25").summary

        assert summary.total_players_found == 2
        assert summary.confidence == pytest.approx(0.95)
        assert summary.fallback_used is False
        assert summary.cache_hit is False
        assert 0 <= summary.average_strength <= 100
        assert "Position" in summary.top_match_reasons
        assert set(summary.timings_ms) == {"classify", "validate", "persistence", "explain"}

    def test_few_results_get_a_broadening_suggestion(self, orchestrator):
        assert orchestrator.search("young striker under 25").suggestions == ["Try expanding the age range"]

    def test_events_in_order(self, orchestrator):
        events = []
        response = orchestrator.search("young striker under 25", on_event=events.append)

        assert [e.stage for e in events] == ALL_STAGES
        assert [e.progress for e in events] == [0, 15, 30, 50, 75, 90, 100]
        assert all(e.search_id == response.search_id for e in events)
        assert len(events[5].payload["results"]) == 2

    def test_overrides_win(self, orchestrator):
        response = orchestrator.search("young striker under 25", overrides={"limit": 1, "sortBy": "age"})

        assert len(response.results) == 1
        assert response.pagination.has_next
        assert response.parameters.sort_by == "age"

    def test_invalid_override_aborts(self, orchestrator):
        events = []
        with pytest.raises(ParameterValidationError):
            orchestrator.search("young striker under 25", overrides={"limit": 0}, on_event=events.append)
        assert events[-1].stage is SearchStage.ERROR
        assert events[-1].payload["stage"] == "validating"
        assert events[-1].progress == 30

    def test_fallback_when_classifier_missing(self, repository, scorer, settings):
        parser = QueryClassifier(None, cache=QueryCache(), settings=settings)
        response = SearchOrchestrator(parser, repository, scorer=scorer, settings=settings).search(
            "Brazilian striker"
        )

        assert response.summary.fallback_used is True
        assert response.summary.confidence == 0.6
        assert [r.candidate.id for r in response.results] == ["a"]

    def test_second_identical_search_hits_the_cache(self, orchestrator, mock_classifier):
        orchestrator.search("young striker under 25")
        response = orchestrator.search("young striker under 25")
        assert response.summary.cache_hit is True
        assert len(mock_classifier.calls) == 1


class TestParameterSearch:
    def test_skips_classification(self, orchestrator):
        events = []
        response = orchestrator.search_with_parameters({"position": ["CDM"]}, on_event=events.append)

        assert SearchStage.CLASSIFYING not in [e.stage for e in events]
        assert events[-1].stage is SearchStage.COMPLETED
        assert [r.candidate.id for r in response.results] == ["d"]
        assert response.summary.confidence == 1.0

    def test_store_order_kept_for_explicit_sort(self, orchestrator):
        response = orchestrator.search_with_parameters({"sortBy": "age", "sortDirection": "asc"})
        assert [r.candidate.id for r in response.results] == ["c", "a", "b", "d", "e"]
        assert [r.rank for r in response.results] == [1, 2, 3, 4, 5]

    def test_ranks_continue_across_pages(self, orchestrator):
        response = orchestrator.search_with_parameters({"limit": 2, "page": 2})
        assert [r.rank for r in response.results] == [3, 4]
        assert response.pagination.has_previous

    def test_validation_error(self, orchestrator, audit_log):
        events = []
        with pytest.raises(ParameterValidationError) as exc:
            orchestrator.search_with_parameters({"age": {"min": 10}}, on_event=events.append)

        assert exc.value.errors[0].field == "age.min"
        assert events[-1].stage is SearchStage.ERROR
        assert "age.min" in events[-1].payload["message"]
        assert audit_log.queries == []


class TestFailures:
    def test_persistence_failure_is_wrapped(self, query_parser, scorer, settings):
        orchestrator = SearchOrchestrator(query_parser, BrokenRepository(), scorer=scorer, settings=settings)
        events = []
        with pytest.raises(PersistenceError):
            orchestrator.search("young striker under 25", on_event=events.append)

        assert events[-1].payload["stage"] == "persistence-query"
        assert events[-1].progress == 50

    def test_audit_failure_is_swallowed(self, query_parser, repository, scorer, settings):
        orchestrator = SearchOrchestrator(
            query_parser, repository, audit_log=BrokenAuditLog(), scorer=scorer, settings=settings
        )
        response = orchestrator.search("young striker under 25")
        assert len(response.results) == 2

    def test_cancelled_search(self, orchestrator, mock_classifier):
        cancel = threading.Event()
        cancel.set()
        events = []
        with pytest.raises(SearchCancelled):
            orchestrator.search(
                "young striker under 25",
                context=SearchContext(cancel_event=cancel),
                on_event=events.append,
            )

        assert mock_classifier.calls == []
        assert [e.stage for e in events] == [SearchStage.STARTED, SearchStage.ERROR]


class TestAudit:
    def test_query_and_results_recorded(self, orchestrator, audit_log):
        response = orchestrator.search("young striker under 25", context=SearchContext(caller="10.0.0.7"))

        query = audit_log.queries[0]
        assert query.search_id == response.search_id
        assert query.caller == "10.0.0.7"
        assert '"position": ["ST", "CF"]' in query.parsed_criteria

        results = audit_log.results_for(response.search_id)
        assert [r.result_rank for r in results] == [1, 2]
        assert [r.match_score for r in results] == [r.explanation.strength_score for r in response.results]


class TestSuggestions:
    def test_broaden_order(self):
        assert broaden_suggestion(SearchParameters(name="Silva", exact_match=True)).startswith("Try a partial")
        assert broaden_suggestion(SearchParameters(age=Range(min=20, max=22))) == "Try expanding the age range"
        assert broaden_suggestion(SearchParameters(position=("ST",))) == "Try including similar positions (CF)"
        assert broaden_suggestion(SearchParameters(market_value=Range(max=100))) == (
            "Consider increasing the maximum market value"
        )
        assert broaden_suggestion(SearchParameters()) is None

    def test_narrow(self):
        suggestions = narrow_suggestions(SearchParameters(position=("ST",)))
        assert suggestions[0] == "Add more specific criteria to narrow results"
        assert "Consider specifying a position" not in suggestions
        assert "Consider adding an age range" in suggestions

    def test_thresholds(self):
        params = SearchParameters(position=("ST",))
        assert generate_suggestions(params, 4) == ["Try including similar positions (CF)"]
        assert generate_suggestions(params, 5) == []
        assert generate_suggestions(params, 50) == []
        assert generate_suggestions(params, 51)[0] == "Add more specific criteria to narrow results"


class TestLifecycleAndStats:
    def test_context_manager_runs_cache_sweeper(self, orchestrator, query_parser):
        with orchestrator:
            assert query_parser.cache.sweeping
        assert not query_parser.cache.sweeping

    def test_stats(self, orchestrator):
        orchestrator.search("young striker under 25")
        stats = orchestrator.stats()
        assert stats["searches"] == 1
        assert stats["query_parser"]["total_queries"] == 1

    def test_filter_options(self, orchestrator):
        options = orchestrator.filter_options()
        assert "ST" in options["positions"]
        assert options["nationalities"] == ["Brazil", "England", "Germany", "Italy", "Nigeria"]
        assert "relevance" in options["sort_fields"]
