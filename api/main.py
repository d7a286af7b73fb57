"""FastAPI application for the scouting search API."""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from scout.audit import InMemoryAuditLog, JsonlAuditLog
from scout.classifier import OpenAIClassifier
from scout.config import Settings, configure_logging, get_settings
from scout.orchestrator import SearchOrchestrator
from scout.query_parser import QueryClassifier
from scout.repository import InMemoryPlayerRepository
from scout.token_tracker import TokenTracker

from .routes import RateLimiter, players_loaded, router

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings, tracker: TokenTracker) -> SearchOrchestrator:
    logger.info("Loading players from %s...", settings.data_path)
    repository = InMemoryPlayerRepository.load(settings.data_path)
    classifier = OpenAIClassifier(
        api_key=settings.openai_api_key,
        model=settings.classifier_model,
        temperature=settings.classifier_temperature,
        tracker=tracker,
    )
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set, every query will use the fallback parser")
    audit_log = JsonlAuditLog(settings.audit_log_path) if settings.audit_log_path else InMemoryAuditLog()
    return SearchOrchestrator(
        classifier=QueryClassifier(classifier, settings=settings),
        repository=repository,
        audit_log=audit_log,
        settings=settings,
    )


def create_app(orchestrator: SearchOrchestrator | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if orchestrator is None:
            configure_logging(settings.log_level)
            app.state.tracker = TokenTracker(settings.token_store_path)
            app.state.orchestrator = build_orchestrator(settings, app.state.tracker)
        else:
            app.state.orchestrator = orchestrator
        app.state.rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window)
        app.state.orchestrator.start()
        logger.info("Ready, players indexed: %s", players_loaded(app.state.orchestrator.repository))
        yield
        app.state.orchestrator.shutdown()

    app = FastAPI(title="Scout Search API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


app = create_app()
