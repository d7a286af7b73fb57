"""
Core data model for the scouting search pipeline.

Search parameters are frozen once validated. Candidate records belong to
the player store and are treated as read-only input. Scores and
explanations are recomputed for every search and never cached.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum


@dataclass(frozen=True)
class Range:
    min: int | None = None
    max: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.min is None and self.max is None

    @property
    def is_closed(self) -> bool:
        return self.min is not None and self.max is not None

    def contains(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True

    def display(self) -> str:
        lo = "?" if self.min is None else str(self.min)
        hi = "?" if self.max is None else str(self.max)
        return f"{lo}-{hi}"


# ── Search parameters ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class SearchParameters:
    # Filters
    position: tuple[str, ...] = ()
    age: Range | None = None
    nationality: tuple[str, ...] = ()
    league: tuple[str, ...] = ()
    clubs: tuple[str, ...] = ()
    market_value: Range | None = None  # euro cents
    height: Range | None = None  # cm
    foot: str | None = None
    goals: Range | None = None
    assists: Range | None = None
    appearances: Range | None = None
    transfer_status: str | None = None  # available | contract_ending | any
    contract_expiring: bool = False
    keywords: tuple[str, ...] = ()
    name: str | None = None

    # Provenance
    original_query: str = ""
    parsed_intent: str = ""
    priority_factors: tuple[str, ...] = ()
    confidence: float | None = None

    # Paging and ordering
    page: int = 1
    limit: int = 20
    sort_by: str = "relevance"
    sort_direction: str = "desc"
    exact_match: bool = False
    include_retired: bool = False

    @property
    def wants_contract_urgency(self) -> bool:
        return self.contract_expiring or self.transfer_status in ("available", "contract_ending")

    def to_dict(self, *, drop_empty: bool = False) -> dict:
        """JSON-friendly dict (tuples become lists). Used for audit blobs and API output."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, tuple):
                data[key] = list(value)
        if drop_empty:
            data = {k: v for k, v in data.items() if not (v is None or v is False or v == "" or v == [])}
        return data


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class ParsedQuery:
    search_parameters: SearchParameters
    confidence: float
    fallback_used: bool
    processing_time_ms: float
    cache_hit: bool = False
    token_usage: TokenUsage | None = None


# ── Candidates ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CandidateRecord:
    id: str
    name: str | None = None
    position: str | None = None
    age: int | None = None
    nationality: str | None = None
    club: str | None = None
    market_value: int | None = None  # euro cents
    league: str | None = None
    height_cm: int | None = None
    foot: str | None = None
    goals: int | None = None
    assists: int | None = None
    appearances: int | None = None
    contract_expiry: date | None = None
    data_quality: float | None = None  # 0-100, as reported by the store
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return self.name or "Unknown player"

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.contract_expiry is not None:
            data["contract_expiry"] = self.contract_expiry.isoformat()
        return data


# ── Scoring & explanation ──────────────────────────────────────────────────

class MatchStrength(str, Enum):
    PERFECT = "perfect"
    GOOD = "good"
    PARTIAL = "partial"
    WEAK = "weak"

    @property
    def rank(self) -> int:
        return _STRENGTH_RANK[self]

    @property
    def display_weight(self) -> int:
        """Fixed numeric value for criterion-level display only."""
        return _STRENGTH_DISPLAY_WEIGHT[self]

    @classmethod
    def from_ratio(cls, ratio: float) -> "MatchStrength":
        if ratio >= 0.9:
            return cls.PERFECT
        if ratio >= 0.7:
            return cls.GOOD
        if ratio >= 0.4:
            return cls.PARTIAL
        return cls.WEAK


_STRENGTH_RANK = {
    MatchStrength.PERFECT: 4,
    MatchStrength.GOOD: 3,
    MatchStrength.PARTIAL: 2,
    MatchStrength.WEAK: 1,
}

_STRENGTH_DISPLAY_WEIGHT = {
    MatchStrength.PERFECT: 100,
    MatchStrength.GOOD: 80,
    MatchStrength.PARTIAL: 60,
    MatchStrength.WEAK: 40,
}


@dataclass(frozen=True)
class MatchedCriterion:
    criterion: str
    search_value: str
    candidate_value: str
    match_strength: MatchStrength
    explanation: str


@dataclass(frozen=True)
class CriterionScore:
    score: int
    max_score: int
    weight: int
    explanation: str

    @property
    def ratio(self) -> float:
        return self.score / self.max_score if self.max_score > 0 else 0.0


@dataclass(frozen=True)
class DetailedScore:
    total_score: int
    max_possible_score: int
    percentage: float
    breakdown: dict[str, CriterionScore] = field(default_factory=dict)


@dataclass(frozen=True)
class ExplanationContext:
    search_intent: str = ""
    priority_factors: tuple[str, ...] = ()
    original_query: str = ""
    result_rank: int = 0  # 0 means "not ranked"
    total_results: int = 0


@dataclass(frozen=True)
class MatchExplanation:
    summary: str
    matched_criteria: list[MatchedCriterion]
    strength_score: int
    potential_concerns: list[str]
    additional_context: str

    def to_dict(self) -> dict:
        data = asdict(self)
        for item in data["matched_criteria"]:
            item["match_strength"] = MatchStrength(item["match_strength"]).value
        return data
