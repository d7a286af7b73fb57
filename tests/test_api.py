"""HTTP API tests against an injected orchestrator."""

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from api.routes import RateLimiter
from scout.config import Settings
from scout.orchestrator import SearchOrchestrator


class BrokenRepository:
    def search(self, spec):
        raise RuntimeError("connection refused")

    def distinct_values(self, field):
        return []


def api_settings(**overrides) -> Settings:
    return Settings(_env_file=None, classifier_base_delay=0.0, **overrides)


@pytest.fixture
def orchestrator(query_parser, repository, scorer, settings):
    return SearchOrchestrator(query_parser, repository, scorer=scorer, settings=settings)


@pytest.fixture
def client(orchestrator):
    app = create_app(orchestrator=orchestrator, settings=api_settings())
    with TestClient(app) as client:
        yield client


class TestSearchEndpoint:
    def test_search(self, client):
        resp = client.post("/api/search", json={"query": "young striker under 25"})
        assert resp.status_code == 200
        data = resp.json()

        assert data["query"] == "young striker under 25"
        assert data["pagination"]["total"] == 2
        assert [r["rank"] for r in data["results"]] == [1, 2]
        assert data["parameters"]["position"] == ["ST", "CF"]
        assert data["summary"]["confidence"] == pytest.approx(0.95)

    def test_market_value_reported_in_euros(self, client):
        data = client.post("/api/search", json={"query": "young striker under 25"}).json()
        values = {r["player"]["id"]: r["player"]["market_value_euros"] for r in data["results"]}
        assert values == {"a": 18_000_000, "b": 32_000_000}

    def test_explanation_shape(self, client):
        result = client.post("/api/search", json={"query": "young striker under 25"}).json()["results"][0]
        explanation = result["match_explanation"]
        assert explanation["summary"]
        assert 0 <= explanation["strength_score"] <= 100
        assert explanation["matched_criteria"][0]["match_strength"] == "perfect"

    def test_paging_fields_override_parsed_values(self, client):
        data = client.post("/api/search", json={"query": "young striker under 25", "limit": 1}).json()
        assert len(data["results"]) == 1
        assert data["pagination"]["has_next"] is True

    def test_invalid_override_is_422(self, client):
        resp = client.post("/api/search", json={"query": "young striker under 25", "limit": 0})
        assert resp.status_code == 422
        assert resp.json()["detail"][0]["field"] == "limit"

    def test_query_too_long(self, client):
        resp = client.post("/api/search", json={"query": "x" * 1001})
        assert resp.status_code == 422

    def test_store_failure_is_503(self, query_parser, scorer, settings):
        orchestrator = SearchOrchestrator(query_parser, BrokenRepository(), scorer=scorer, settings=settings)
        with TestClient(create_app(orchestrator=orchestrator, settings=api_settings())) as client:
            resp = client.post("/api/search", json={"query": "young striker under 25"})
        assert resp.status_code == 503


class TestParameterEndpoint:
    def test_structured_search(self, client):
        resp = client.post("/api/search/parameters", json={"parameters": {"position": ["CDM"]}})
        assert resp.status_code == 200
        assert [r["player"]["id"] for r in resp.json()["results"]] == ["d"]

    def test_field_errors(self, client):
        resp = client.post("/api/search/parameters", json={"parameters": {"age": {"min": 10}}})
        assert resp.status_code == 422
        assert resp.json()["detail"] == [{"field": "age.min", "message": "must be between 16 and 45"}]


class TestRateLimit:
    def test_requests_over_the_limit_rejected(self, orchestrator):
        app = create_app(orchestrator=orchestrator, settings=api_settings(rate_limit_requests=2))
        with TestClient(app) as client:
            codes = [
                client.post("/api/search", json={"query": "young striker under 25"}).status_code
                for _ in range(3)
            ]
        assert codes == [200, 200, 429]

    def test_sliding_window(self):
        now = [0.0]
        limiter = RateLimiter(max_requests=1, window=10.0, clock=lambda: now[0])
        assert limiter.allow("a")
        assert not limiter.allow("a")
        assert limiter.allow("b")
        now[0] = 10.0
        assert limiter.allow("a")

    def test_idle_clients_are_forgotten(self):
        now = [0.0]
        limiter = RateLimiter(max_requests=5, window=10.0, clock=lambda: now[0])
        for i in range(20):
            limiter.allow(f"10.0.0.{i}")
        assert len(limiter) == 20

        now[0] = 15.0
        limiter.allow("10.0.0.99")
        assert len(limiter) == 1


class TestServiceEndpoints:
    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data == {"status": "ready", "players_loaded": 7, "cache_size": 0}

    def test_store_without_len(self, query_parser, scorer, settings):
        orchestrator = SearchOrchestrator(query_parser, BrokenRepository(), scorer=scorer, settings=settings)
        with TestClient(create_app(orchestrator=orchestrator, settings=api_settings())) as client:
            data = client.get("/api/health").json()
        assert data["players_loaded"] is None
        assert data["status"] == "ready"

    def test_filters(self, client):
        data = client.get("/api/filters").json()
        assert "GK" in data["positions"]
        assert "Premier League" in data["leagues"]

    def test_stats(self, client):
        client.post("/api/search", json={"query": "young striker under 25"})
        data = client.get("/api/stats").json()
        assert data["searches"] == 1
        assert data["query_parser"]["total_queries"] == 1
        assert "tokens" not in data

    def test_cache_clear(self, client):
        client.post("/api/search", json={"query": "young striker under 25"})
        assert client.get("/api/health").json()["cache_size"] == 1

        assert client.post("/api/cache/clear").json() == {"status": "cleared"}
        assert client.get("/api/health").json()["cache_size"] == 0
