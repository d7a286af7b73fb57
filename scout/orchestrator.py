"""
Search pipeline: classify → sanitize/validate → filter spec → fetch →
score + explain → rank → suggestions → audit.

Each search runs sequentially and independently. The only state shared
between searches is the query parser's cache and usage counters, both of
which are internally synchronised. Audit failures are logged and
swallowed; validation and persistence failures abort the search.
"""

import json
import logging
import math
import threading
import time
import uuid
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

import numpy as np

from .audit import AuditLog, SearchQueryRecord, SearchResultRecord
from .config import Settings
from .errors import ParameterValidationError, PersistenceError, SearchCancelled
from .events import EventListener, ProgressEmitter, SearchStage
from .explanation import MatchExplanationService
from .models import (
    CandidateRecord,
    DetailedScore,
    ExplanationContext,
    MatchExplanation,
    MatchStrength,
    SearchParameters,
)
from .query_builder import FilterSpec, build_filter_spec
from .query_parser import QueryClassifier
from .repository import PlayerRepository
from .sanitizer import sanitize
from .schema import FOOTBALL_POSITIONS, MAJOR_LEAGUES, PREFERRED_FOOT, SORT_FIELDS, TRANSFER_STATUS, validate
from .scoring import COMPATIBLE_POSITIONS, MatchScorer

logger = logging.getLogger(__name__)

FEW_RESULTS = 5
MANY_RESULTS = 50
MAX_QUERY_LENGTH = 1000


# ── Request / response types ───────────────────────────────────────────────

@dataclass
class SearchContext:
    search_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    caller: str | None = None  # client IP or user id, for the audit trail
    cancel_event: threading.Event | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


@dataclass(frozen=True)
class RankedCandidate:
    rank: int
    candidate: CandidateRecord
    score: DetailedScore
    explanation: MatchExplanation

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "player": self.candidate.to_dict(),
            "match_percentage": round(self.score.percentage, 1),
            "match_explanation": self.explanation.to_dict(),
        }


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    def to_dict(self) -> dict:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_previous": self.has_previous,
        }


@dataclass(frozen=True)
class SearchSummary:
    total_players_found: int
    average_strength: float
    top_match_reasons: list[str]
    confidence: float
    fallback_used: bool
    cache_hit: bool
    timings_ms: dict[str, float]

    def to_dict(self) -> dict:
        return {
            "total_players_found": self.total_players_found,
            "average_strength": self.average_strength,
            "top_match_reasons": list(self.top_match_reasons),
            "confidence": self.confidence,
            "fallback_used": self.fallback_used,
            "cache_hit": self.cache_hit,
            "timings_ms": dict(self.timings_ms),
        }


@dataclass(frozen=True)
class SearchResponse:
    search_id: str
    query: str
    parameters: SearchParameters
    results: list[RankedCandidate]
    pagination: Pagination
    suggestions: list[str]
    summary: SearchSummary
    processing_time_ms: float

    def to_dict(self) -> dict:
        return {
            "search_id": self.search_id,
            "query": self.query,
            "parameters": self.parameters.to_dict(drop_empty=True),
            "results": [r.to_dict() for r in self.results],
            "pagination": self.pagination.to_dict(),
            "suggestions": list(self.suggestions),
            "summary": self.summary.to_dict(),
            "processing_time_ms": round(self.processing_time_ms, 1),
        }


# ── Suggestions ────────────────────────────────────────────────────────────

def broaden_suggestion(params: SearchParameters) -> str | None:
    """Suggestion for the most restrictive active filter, checked in a fixed order."""
    if params.name and params.exact_match:
        return "Try a partial name match instead of an exact one"
    if params.age and params.age.is_closed and params.age.max - params.age.min < 5:
        return "Try expanding the age range"
    if len(params.position) == 1:
        similar = COMPATIBLE_POSITIONS.get(params.position[0], ())
        if similar:
            return f"Try including similar positions ({', '.join(similar)})"
        return "Try including similar positions"
    if params.market_value and params.market_value.max is not None:
        return "Consider increasing the maximum market value"
    if params.clubs:
        return "Try searching beyond the selected clubs"
    if len(params.nationality) == 1:
        return "Try including more nationalities"
    if len(params.league) == 1:
        return "Try including more leagues"
    if params.height:
        return "Try widening the height range"
    if params.contract_expiring:
        return "Try including players with longer contracts"
    if params.age:
        return "Try expanding the age range"
    if params.nationality or params.league or params.position:
        return "Try removing some of the selected filters"
    return None


def narrow_suggestions(params: SearchParameters) -> list[str]:
    suggestions = ["Add more specific criteria to narrow results"]
    if not params.position:
        suggestions.append("Consider specifying a position")
    if not params.age:
        suggestions.append("Consider adding an age range")
    if not params.market_value:
        suggestions.append("Consider adding a market value range")
    if not params.league:
        suggestions.append("Consider limiting the search to specific leagues")
    return suggestions


def generate_suggestions(params: SearchParameters, total: int) -> list[str]:
    if total < FEW_RESULTS:
        suggestion = broaden_suggestion(params)
        return [suggestion] if suggestion else []
    if total > MANY_RESULTS:
        return narrow_suggestions(params)
    return []


def top_match_reasons(results: list[RankedCandidate], limit: int = 3) -> list[str]:
    counts: Counter = Counter()
    for result in results:
        for criterion in result.explanation.matched_criteria:
            if criterion.match_strength in (MatchStrength.PERFECT, MatchStrength.GOOD):
                counts[criterion.criterion] += 1
    return [name for name, _ in counts.most_common(limit)]


# ── Orchestrator ───────────────────────────────────────────────────────────

class SearchOrchestrator:
    """Owns the query parser (and its cache) for its whole lifetime.

    start() begins the periodic cache sweep, shutdown() stops it and clears
    the cache. Also usable as a context manager.
    """

    def __init__(
        self,
        classifier: QueryClassifier,
        repository: PlayerRepository,
        audit_log: AuditLog | None = None,
        scorer: MatchScorer | None = None,
        settings: Settings | None = None,
    ):
        self.classifier = classifier
        self.repository = repository
        self.audit_log = audit_log
        self.scorer = scorer or MatchScorer()
        self.explainer = MatchExplanationService(self.scorer)
        self.settings = settings or Settings()
        self._searches = 0
        self._lock = threading.Lock()

    # ── Lifecycle ──────────────────────────────────────────────────────────

    def start(self) -> "SearchOrchestrator":
        self.classifier.cache.start_sweeper(self.settings.cache_sweep_interval_seconds)
        return self

    def shutdown(self) -> None:
        self.classifier.cache.close()
        self.classifier.close()

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.shutdown()

    # ── Public API ─────────────────────────────────────────────────────────

    def search(
        self,
        query: str,
        overrides: Mapping | None = None,
        context: SearchContext | None = None,
        on_event: EventListener | None = None,
        timeout: float | None = None,
    ) -> SearchResponse:
        """Free-text search. *overrides* (page, limit, sortBy, extra filters) win over parsed values."""
        context = context or SearchContext()
        emitter = ProgressEmitter(context.search_id, on_event)
        timings: dict[str, float] = {}
        started = time.perf_counter()

        try:
            emitter.emit(SearchStage.STARTED, {"query": query})

            self._checkpoint(context)
            emitter.emit(SearchStage.CLASSIFYING, {"message": "Analyzing search query"})
            t0 = time.perf_counter()
            parsed = self.classifier.parse(query, timeout=timeout)
            timings["classify"] = _ms(t0)

            self._checkpoint(context)
            emitter.emit(SearchStage.VALIDATING, {
                "confidence": parsed.confidence,
                "fallback_used": parsed.fallback_used,
                "cache_hit": parsed.cache_hit,
            })
            t0 = time.perf_counter()
            raw = parsed.search_parameters.to_dict(drop_empty=True)
            raw["original_query"] = (query or "")[:MAX_QUERY_LENGTH]
            raw["confidence"] = parsed.confidence
            raw.update(sanitize(overrides or {}))
            params = validate(sanitize(raw))
            timings["validate"] = _ms(t0)

            return self._run(
                query, params, context, emitter, timings, started,
                confidence=parsed.confidence,
                fallback_used=parsed.fallback_used,
                cache_hit=parsed.cache_hit,
            )
        except Exception as e:
            self._fail(emitter, e)
            raise

    def search_with_parameters(
        self,
        raw_params: Mapping,
        context: SearchContext | None = None,
        on_event: EventListener | None = None,
    ) -> SearchResponse:
        """Structured search that skips classification."""
        context = context or SearchContext()
        emitter = ProgressEmitter(context.search_id, on_event)
        timings: dict[str, float] = {}
        started = time.perf_counter()

        try:
            emitter.emit(SearchStage.STARTED, {"parameters": dict(raw_params or {})})

            self._checkpoint(context)
            emitter.emit(SearchStage.VALIDATING, {})
            t0 = time.perf_counter()
            params = validate(sanitize(raw_params or {}))
            if params.confidence is None:
                params = replace(params, confidence=1.0)
            timings["validate"] = _ms(t0)

            return self._run(
                params.original_query, params, context, emitter, timings, started,
                confidence=params.confidence,
                fallback_used=False,
                cache_hit=False,
            )
        except Exception as e:
            self._fail(emitter, e)
            raise

    def filter_options(self) -> dict:
        return {
            "positions": list(FOOTBALL_POSITIONS),
            "leagues": list(MAJOR_LEAGUES),
            "nationalities": self.repository.distinct_values("nationality"),
            "clubs": self.repository.distinct_values("club")[:100],
            "preferred_foot": list(PREFERRED_FOOT),
            "transfer_status": list(TRANSFER_STATUS),
            "sort_fields": list(SORT_FIELDS),
        }

    def stats(self) -> dict:
        with self._lock:
            searches = self._searches
        return {"searches": searches, "query_parser": self.classifier.usage_stats()}

    # ── Pipeline ───────────────────────────────────────────────────────────

    def _run(self, query: str, params: SearchParameters, context: SearchContext,
             emitter: ProgressEmitter, timings: dict[str, float], started: float, *,
             confidence: float, fallback_used: bool, cache_hit: bool) -> SearchResponse:
        self._checkpoint(context)
        emitter.emit(SearchStage.PERSISTENCE_QUERY, {"filters": params.to_dict(drop_empty=True)})
        t0 = time.perf_counter()
        spec = build_filter_spec(params, search_id=context.search_id, as_of=self.scorer.as_of)
        candidates, total = self._fetch(spec)
        timings["persistence"] = _ms(t0)

        self._checkpoint(context)
        emitter.emit(SearchStage.EXPLANATION_GENERATION, {"candidates": len(candidates)})
        t0 = time.perf_counter()
        results = self._rank(candidates, params, spec, total)
        timings["explain"] = _ms(t0)

        self._checkpoint(context)
        suggestions = generate_suggestions(params, total)
        pagination = Pagination(page=params.page, limit=params.limit, total=total)
        emitter.emit(SearchStage.RESULTS, {
            "results": [r.to_dict() for r in results],
            "pagination": pagination.to_dict(),
            "suggestions": suggestions,
        })

        self._audit(query, params, context, results)

        strengths = [r.explanation.strength_score for r in results]
        summary = SearchSummary(
            total_players_found=total,
            average_strength=round(float(np.mean(strengths)), 1) if strengths else 0.0,
            top_match_reasons=top_match_reasons(results),
            confidence=confidence,
            fallback_used=fallback_used,
            cache_hit=cache_hit,
            timings_ms={k: round(v, 1) for k, v in timings.items()},
        )
        emitter.emit(SearchStage.COMPLETED, summary.to_dict())

        processing_ms = _ms(started)
        with self._lock:
            self._searches += 1

        logger.info(
            "query=%r search=%s results=%d/%d total=%.0fms (%s)",
            query, context.search_id[:8], len(results), total, processing_ms,
            " ".join(f"{k}={v:.0f}" for k, v in timings.items()),
        )

        return SearchResponse(
            search_id=context.search_id,
            query=query,
            parameters=params,
            results=results,
            pagination=pagination,
            suggestions=suggestions,
            summary=summary,
            processing_time_ms=processing_ms,
        )

    def _fetch(self, spec: FilterSpec) -> tuple[list[CandidateRecord], int]:
        try:
            return self.repository.search(spec)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Player lookup failed: {e}") from e

    def _rank(self, candidates: list[CandidateRecord], params: SearchParameters,
              spec: FilterSpec, total: int) -> list[RankedCandidate]:
        scores = [self.scorer.score(c, params) for c in candidates]

        order = np.arange(len(candidates))
        if params.sort_by == "relevance" and candidates:
            percentages = np.array([s.percentage for s in scores])
            # Stable, so equal scores keep the store's order
            order = np.argsort(-percentages, kind="stable")

        results = []
        for i, idx in enumerate(order):
            rank = spec.offset + i + 1
            ctx = ExplanationContext(
                search_intent=params.parsed_intent,
                priority_factors=params.priority_factors,
                original_query=params.original_query,
                result_rank=rank,
                total_results=total,
            )
            candidate = candidates[idx]
            results.append(RankedCandidate(
                rank=rank,
                candidate=candidate,
                score=scores[idx],
                explanation=self.explainer.explain(candidate, params, ctx, detailed_score=scores[idx]),
            ))
        return results

    def _audit(self, query: str, params: SearchParameters, context: SearchContext,
               results: list[RankedCandidate]) -> None:
        if self.audit_log is None:
            return
        try:
            self.audit_log.record_query(SearchQueryRecord(
                search_id=context.search_id,
                query_text=query,
                parsed_criteria=json.dumps(params.to_dict(drop_empty=True)),
                caller=context.caller,
                created_at=context.timestamp,
            ))
            self.audit_log.record_results([
                SearchResultRecord(
                    search_id=context.search_id,
                    player_id=r.candidate.id,
                    match_score=r.explanation.strength_score,
                    result_rank=r.rank,
                )
                for r in results
            ])
        except Exception:
            logger.warning("Audit logging failed for search %s", context.search_id, exc_info=True)

    @staticmethod
    def _checkpoint(context: SearchContext) -> None:
        if context.cancelled:
            raise SearchCancelled(f"Search {context.search_id} was cancelled")

    @staticmethod
    def _fail(emitter: ProgressEmitter, error: Exception) -> None:
        stage = emitter.events[-1].stage if emitter.events else SearchStage.STARTED
        if isinstance(error, (ParameterValidationError, SearchCancelled, PersistenceError)):
            message = str(error)
        else:
            message = "Search failed"
            logger.exception("Search %s failed during %s", emitter.search_id, stage.value)
        emitter.error(stage, message)


def _ms(t0: float) -> float:
    return (time.perf_counter() - t0) * 1000
