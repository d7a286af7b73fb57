"""API routes wrapping the search orchestrator."""

import logging
import threading
import time

from fastapi import APIRouter, HTTPException, Request

from scout.errors import ParameterValidationError, PersistenceError
from scout.orchestrator import SearchContext, SearchResponse as CoreSearchResponse

from .models import ParameterSearchRequest, SearchRequest, SearchResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class RateLimiter:
    """Sliding-window limit per client key."""

    def __init__(self, max_requests: int = 30, window: float = 60.0, clock=time.time):
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._log: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._log)

    def allow(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            self._evict_idle(now)
            recent = self._log.get(key, [])
            if len(recent) >= self.max_requests:
                return False
            recent.append(now)
            self._log[key] = recent
            return True

    def _evict_idle(self, now: float) -> None:
        # Prune old entries, dropping keys with nothing left in the window
        for key in list(self._log):
            recent = [t for t in self._log[key] if now - t < self.window]
            if recent:
                self._log[key] = recent
            else:
                del self._log[key]


def players_loaded(repository) -> int | None:
    return len(repository) if hasattr(repository, "__len__") else None


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _check_rate_limit(request: Request) -> None:
    limiter: RateLimiter = request.app.state.rate_limiter
    if not limiter.allow(_client_key(request)):
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Try again shortly.")


def _to_response(response: CoreSearchResponse) -> SearchResponse:
    data = response.to_dict()
    for result in data["results"]:
        player = result["player"]
        cents = player.pop("market_value")
        player["market_value_euros"] = cents / 100 if cents is not None else None
    return SearchResponse.model_validate(data)


def _run_search(request: Request, search):
    try:
        return _to_response(search(SearchContext(caller=_client_key(request))))
    except ParameterValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=[{"field": err.field, "message": err.message} for err in e.errors],
        ) from e
    except PersistenceError as e:
        logger.error("Player store unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Player database unavailable") from e


@router.post("/search", response_model=SearchResponse)
def search(req: SearchRequest, request: Request):
    _check_rate_limit(request)
    orchestrator = request.app.state.orchestrator
    return _run_search(
        request,
        lambda ctx: orchestrator.search(req.query, overrides=req.overrides(), context=ctx, timeout=req.timeout),
    )


@router.post("/search/parameters", response_model=SearchResponse)
def search_with_parameters(req: ParameterSearchRequest, request: Request):
    _check_rate_limit(request)
    orchestrator = request.app.state.orchestrator
    return _run_search(request, lambda ctx: orchestrator.search_with_parameters(req.parameters, context=ctx))


@router.get("/filters")
def filters(request: Request):
    return request.app.state.orchestrator.filter_options()


@router.get("/stats")
def stats(request: Request):
    data = request.app.state.orchestrator.stats()
    tracker = getattr(request.app.state, "tracker", None)
    if tracker is not None:
        data["tokens"] = tracker.summary()
    return data


@router.post("/cache/clear")
def clear_cache(request: Request):
    request.app.state.orchestrator.classifier.clear_cache()
    return {"status": "cleared"}


@router.get("/health")
def health(request: Request):
    orchestrator = request.app.state.orchestrator
    repository = orchestrator.repository
    return {
        "status": "ready",
        "players_loaded": players_loaded(repository),
        "cache_size": len(orchestrator.classifier.cache),
    }
