"""Pydantic request/response schemas for the scouting API."""

from pydantic import BaseModel, Field


# ── Requests ───────────────────────────────────────────────────────────────

class SearchRequest(BaseModel):
    query: str = Field(max_length=1000)
    page: int | None = None
    limit: int | None = None
    sort_by: str | None = None
    sort_direction: str | None = None
    filters: dict = Field(default_factory=dict)  # extra structured filters, override parsed ones
    timeout: float | None = Field(default=None, gt=0, le=60)

    def overrides(self) -> dict:
        overrides = dict(self.filters)
        for key in ("page", "limit", "sort_by", "sort_direction"):
            value = getattr(self, key)
            if value is not None:
                overrides[key] = value
        return overrides


class ParameterSearchRequest(BaseModel):
    parameters: dict


# ── Responses ──────────────────────────────────────────────────────────────

class MatchedCriterionResponse(BaseModel):
    criterion: str
    search_value: str
    candidate_value: str
    match_strength: str
    explanation: str


class MatchExplanationResponse(BaseModel):
    summary: str
    matched_criteria: list[MatchedCriterionResponse]
    strength_score: int
    potential_concerns: list[str]
    additional_context: str


class PlayerResponse(BaseModel):
    id: str
    name: str | None
    position: str | None
    age: int | None
    nationality: str | None
    club: str | None
    league: str | None
    market_value_euros: float | None
    height_cm: int | None
    foot: str | None
    goals: int | None
    assists: int | None
    appearances: int | None
    contract_expiry: str | None


class PlayerResult(BaseModel):
    rank: int
    match_percentage: float
    player: PlayerResponse
    match_explanation: MatchExplanationResponse


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_previous: bool


class SearchSummaryResponse(BaseModel):
    total_players_found: int
    average_strength: float
    top_match_reasons: list[str]
    confidence: float
    fallback_used: bool
    cache_hit: bool
    timings_ms: dict[str, float]


class SearchResponse(BaseModel):
    search_id: str
    query: str
    parameters: dict
    results: list[PlayerResult]
    pagination: PaginationResponse
    suggestions: list[str]
    summary: SearchSummaryResponse
    processing_time_ms: float
