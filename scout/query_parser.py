"""
Free-text scouting request → ParsedQuery.

Tries the classifier first (with retry and exponential backoff), falls back
to the regex extractor when it is unavailable, slow, or returns something
unusable. Successful classifier parses are cached by normalised text.
parse() never raises.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field, replace

import numpy as np

from .cache import QueryCache
from .classifier import Classifier, ClassifierOutput, ClassifierResult
from .config import FallbackConfig, Settings
from .errors import ClassifierError, ClassifierUnavailable
from .fallback_parser import parse_fallback
from .models import ParsedQuery, Range, SearchParameters
from .schema import AGE_BOUNDS, FOOTBALL_POSITIONS, MAJOR_LEAGUES, MARKET_VALUE_MAX
from .sanitizer import normalize_league

logger = logging.getLogger(__name__)

# Recent parses kept for the average processing time
PROCESSING_TIME_WINDOW = 1000


@dataclass
class UsageStats:
    total_queries: int = 0
    cache_hits: int = 0
    fallback_used: int = 0
    total_tokens: int = 0
    processing_times: deque = field(default_factory=lambda: deque(maxlen=PROCESSING_TIME_WINDOW))


class _Deadline:
    def __init__(self, timeout: float | None):
        self._end = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> float | None:
        if self._end is None:
            return None
        return max(0.0, self._end - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


# ── Server-side validation of classifier output ────────────────────────────

def _clamp_range(rng, lo: int, hi: int, scale: float = 1) -> Range | None:
    if rng is None:
        return None
    lo_v = None if rng.min is None else int(max(lo, min(hi, round(rng.min * scale))))
    hi_v = None if rng.max is None else int(max(lo, min(hi, round(rng.max * scale))))
    if lo_v is None and hi_v is None:
        return None
    if lo_v is not None and hi_v is not None and lo_v > hi_v:
        lo_v, hi_v = hi_v, lo_v
    return Range(min=lo_v, max=hi_v)


def _strings(values: list[str], limit: int, max_length: int = 50) -> tuple[str, ...]:
    cleaned = (v.strip() for v in values if isinstance(v, str))
    return tuple(dict.fromkeys(v for v in cleaned if 0 < len(v) <= max_length))[:limit]


def to_search_parameters(output: ClassifierOutput) -> SearchParameters:
    """Clamp and filter classifier output. Nothing it claims is trusted verbatim."""
    positions = [p.strip().upper() for p in output.position if isinstance(p, str)]
    positions = [p for p in positions if p in FOOTBALL_POSITIONS]
    leagues = [normalize_league(lg) for lg in _strings(output.league, 10)]

    return SearchParameters(
        position=tuple(dict.fromkeys(positions))[:5],
        age=_clamp_range(output.age, *AGE_BOUNDS),
        nationality=tuple(n for n in _strings(output.nationality, 10) if len(n) >= 2),
        league=tuple(dict.fromkeys(lg for lg in leagues if lg in MAJOR_LEAGUES)),
        # Classifier speaks euros, the core stores cents
        market_value=_clamp_range(output.market_value, 0, MARKET_VALUE_MAX, scale=100),
        transfer_status=output.transfer_status,
        keywords=_strings(output.keywords, 20),
        parsed_intent=(output.parsed_intent or "").strip()[:500] or "Football player search",
        priority_factors=_strings(output.priority_factors, 10),
    )


def calculate_confidence(params: SearchParameters) -> float:
    confidence = 0.5
    if params.position:
        confidence += 0.2
    if params.age:
        confidence += 0.15
    if params.nationality:
        confidence += 0.1
    if params.league:
        confidence += 0.1
    if params.market_value:
        confidence += 0.1
    if params.priority_factors:
        confidence += 0.1
    return min(round(confidence, 4), 1.0)


class QueryClassifier:
    def __init__(
        self,
        classifier: Classifier | None,
        cache: QueryCache | None = None,
        settings: Settings | None = None,
        fallback_config: FallbackConfig | None = None,
    ):
        settings = settings or Settings()
        self.classifier = classifier
        self.cache = cache or QueryCache(ttl_seconds=settings.cache_ttl_seconds)
        self.max_retries = max(1, settings.classifier_max_retries)
        self.base_delay = settings.classifier_base_delay
        self.default_timeout = settings.classifier_timeout
        self.fallback_config = fallback_config or FallbackConfig()
        self._stats = UsageStats()
        self._stats_lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._sleep = time.sleep

    # ── Public API ─────────────────────────────────────────────────────────

    def parse(self, free_text: str, timeout: float | None = None) -> ParsedQuery:
        t0 = time.perf_counter()
        text = free_text if isinstance(free_text, str) else ""
        timeout = self.default_timeout if timeout is None else timeout
        try:
            if len(text.strip()) <= 1:
                logger.info("Query too short for the classifier, using fallback parser")
                return self._fallback(text, t0)

            cached = self.cache.get(text)
            if cached is not None:
                return self._finish(
                    ParsedQuery(
                        search_parameters=replace(cached.result, original_query=text),
                        confidence=cached.confidence,
                        fallback_used=False,
                        processing_time_ms=self._elapsed(t0),
                        cache_hit=True,
                    ),
                    cache_hit=True,
                )

            result = self._classify_with_retry(text, _Deadline(timeout))
            if result is None:
                return self._fallback(text, t0)

            params = to_search_parameters(result.output)
            confidence = calculate_confidence(params)
            params = replace(params, confidence=confidence)
            self.cache.set(text, params, confidence)
            tokens = result.usage.total_tokens if result.usage else 0

            return self._finish(
                ParsedQuery(
                    search_parameters=replace(params, original_query=text),
                    confidence=confidence,
                    fallback_used=False,
                    processing_time_ms=self._elapsed(t0),
                    token_usage=result.usage,
                ),
                tokens=tokens,
            )
        except Exception:
            logger.exception("Query parsing failed unexpectedly, using fallback parser")
            return self._fallback(text, t0)

    def usage_stats(self) -> dict:
        with self._stats_lock:
            stats = self._stats
            times = list(stats.processing_times)
            total = stats.total_queries
            return {
                "total_queries": total,
                "cache_hits": stats.cache_hits,
                "fallback_used": stats.fallback_used,
                "total_tokens": stats.total_tokens,
                "cache_hit_rate": stats.cache_hits / total if total else 0.0,
                "fallback_rate": stats.fallback_used / total if total else 0.0,
                "cache_size": len(self.cache),
                "average_processing_time_ms": float(np.mean(times)) if times else 0.0,
            }

    def clear_cache(self) -> None:
        self.cache.clear()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    # ── Internals ──────────────────────────────────────────────────────────

    def _classify_with_retry(self, text: str, deadline: _Deadline) -> ClassifierResult | None:
        if self.classifier is None:
            return None

        for attempt in range(1, self.max_retries + 1):
            if deadline.expired:
                logger.warning("Classifier time budget exhausted before attempt %d", attempt)
                return None
            try:
                return self._call_classifier(text, deadline.remaining())
            except ClassifierUnavailable as e:
                logger.info("Classifier unavailable: %s", e)
                return None
            except FutureTimeout:
                logger.warning("Classifier timed out on attempt %d", attempt)
                return None
            except ClassifierError as e:
                if attempt >= self.max_retries:
                    logger.warning("Classifier attempt %d/%d failed: %s, giving up", attempt, self.max_retries, e)
                    return None
                wait = self.base_delay * 2 ** (attempt - 1)
                remaining = deadline.remaining()
                if remaining is not None and wait >= remaining:
                    logger.warning("Classifier attempt %d failed: %s, no time left to retry", attempt, e)
                    return None
                logger.warning(
                    "Classifier attempt %d/%d failed: %s, retrying in %.2fs",
                    attempt, self.max_retries, e, wait,
                )
                self._sleep(wait)
        return None

    def _call_classifier(self, text: str, remaining: float | None) -> ClassifierResult:
        if remaining is None:
            return self.classifier.classify(text)
        # Bound the wait even if the classifier ignores its timeout argument
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="classifier")
        future = self._executor.submit(self.classifier.classify, text, timeout=remaining)
        try:
            return future.result(timeout=remaining)
        except FutureTimeout:
            future.cancel()
            raise

    def _fallback(self, text: str, t0: float) -> ParsedQuery:
        params = parse_fallback(text, self.fallback_config)
        return self._finish(
            ParsedQuery(
                search_parameters=params,
                confidence=self.fallback_config.confidence,
                fallback_used=True,
                processing_time_ms=self._elapsed(t0),
            ),
            fallback=True,
        )

    def _finish(self, parsed: ParsedQuery, *, cache_hit: bool = False, fallback: bool = False,
                tokens: int = 0) -> ParsedQuery:
        with self._stats_lock:
            self._stats.total_queries += 1
            self._stats.cache_hits += int(cache_hit)
            self._stats.fallback_used += int(fallback)
            self._stats.total_tokens += tokens
            self._stats.processing_times.append(parsed.processing_time_ms)
        return parsed

    @staticmethod
    def _elapsed(t0: float) -> float:
        return (time.perf_counter() - t0) * 1000
