"""Shared fixtures: a scriptable classifier, sample players and parameter sets."""

import time
from datetime import date

import pytest

from scout.cache import QueryCache
from scout.classifier import ClassifierOutput, ClassifierResult
from scout.config import Settings
from scout.errors import ClassifierError
from scout.models import CandidateRecord, Range, SearchParameters, TokenUsage
from scout.query_parser import QueryClassifier
from scout.repository import InMemoryPlayerRepository
from scout.scoring import MatchScorer

AS_OF = date(2025, 7, 1)


# ============================================================================
# Mock classifier
# ============================================================================

class MockClassifier:
    """Classifier double.

    Returns `output` (camelCase dict, as the real model would) after failing
    `fail_times` times with `error`. Records every call. `delay` makes each
    call block, for timeout tests.
    """

    def __init__(self, output: dict | None = None, fail_times: int = 0,
                 error: Exception | None = None, delay: float = 0.0):
        self.output = output or {
            "position": ["ST", "CF"],
            "age": {"max": 25},
            "parsedIntent": "Young striker under 25",
            "priorityFactors": ["position", "age"],
        }
        self.fail_times = fail_times
        self.error = error or ClassifierError("Mock classifier failure")
        self.delay = delay
        self.usage = TokenUsage(prompt_tokens=120, completion_tokens=30, total_tokens=150)
        self.calls: list[tuple[str, float | None]] = []

    def classify(self, text: str, *, timeout: float | None = None) -> ClassifierResult:
        self.calls.append((text, timeout))
        if self.delay:
            time.sleep(self.delay)
        if len(self.calls) <= self.fail_times:
            raise self.error
        return ClassifierResult(output=ClassifierOutput.model_validate(self.output), usage=self.usage)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, classifier_base_delay=0.0, classifier_timeout=None)


@pytest.fixture
def mock_classifier() -> MockClassifier:
    return MockClassifier()


@pytest.fixture
def query_parser(mock_classifier, settings) -> QueryClassifier:
    parser = QueryClassifier(mock_classifier, cache=QueryCache(), settings=settings)
    parser._sleep = lambda seconds: None
    yield parser
    parser.close()


@pytest.fixture
def scorer() -> MatchScorer:
    return MatchScorer(as_of=AS_OF)


# ============================================================================
# Players
# ============================================================================

@pytest.fixture
def brazilian_striker() -> CandidateRecord:
    return CandidateRecord(
        id="p-st",
        name="Gabriel Nunes",
        position="ST",
        age=22,
        nationality="Brazil",
        club="Sampdoria",
        league="Serie B",
        market_value=450_000_000,
        height_cm=180,
        foot="Right",
        goals=11,
        assists=3,
        appearances=24,
        contract_expiry=date(2027, 6, 30),
        data_quality=78,
    )


@pytest.fixture
def goalkeeper() -> CandidateRecord:
    return CandidateRecord(
        id="p-gk",
        name="André Santos",
        position="GK",
        age=28,
        nationality="Portugal",
        club="Sporting CP",
        league="Primeira Liga",
        market_value=1_400_000_000,
        goals=0,
        assists=0,
        appearances=30,
        contract_expiry=date(2027, 6, 30),
        data_quality=89,
    )


@pytest.fixture
def sample_players() -> list[CandidateRecord]:
    return [
        CandidateRecord(id="a", name="Rafael Costa", position="ST", age=22, nationality="Brazil",
                        club="Palmeiras", league="Brazilian Serie A", market_value=1_800_000_000,
                        goals=17, assists=4, appearances=28, data_quality=92),
        CandidateRecord(id="b", name="Lukas Brandt", position="CF", age=24, nationality="Germany",
                        club="VfB Stuttgart", league="Bundesliga", market_value=3_200_000_000,
                        goals=13, assists=7, appearances=26, data_quality=95),
        CandidateRecord(id="c", name="Marcus Ellery", position="RW", age=21, nationality="England",
                        club="Brighton", league="Premier League", market_value=4_000_000_000,
                        goals=9, assists=11, appearances=30, data_quality=97),
        CandidateRecord(id="d", name="Matteo Ricci", position="CDM", age=29, nationality="Italy",
                        club="Atalanta", league="Serie A", market_value=1_500_000_000,
                        goals=2, assists=5, appearances=29, data_quality=85),
        CandidateRecord(id="e", name="Oliver Hart", position="ST", age=31, nationality="England",
                        club="Leeds United", league="Championship", market_value=600_000_000,
                        goals=19, assists=5, appearances=33, data_quality=84),
        CandidateRecord(id="f", name="Low Quality", position="ST", age=19, nationality="Nigeria",
                        data_quality=35),
        CandidateRecord(id="g", name="Retired Veteran", position="ST", age=38, nationality="Brazil",
                        data_quality=60, is_active=False),
    ]


@pytest.fixture
def repository(sample_players) -> InMemoryPlayerRepository:
    return InMemoryPlayerRepository(sample_players)


# ============================================================================
# Parameters
# ============================================================================

@pytest.fixture
def striker_params() -> SearchParameters:
    return SearchParameters(
        position=("ST", "CF"),
        age=Range(min=18, max=25),
        nationality=("Brazil",),
        league=("Serie A",),
    )
