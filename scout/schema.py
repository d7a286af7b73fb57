"""
Canonical shape and validation rules for a search request.

Validation is the only place a request can be rejected: every failure is
reported as a (field, message) pair and the search is aborted before any
external call is made.
"""

from typing import Annotated, ClassVar, Literal, Mapping

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .errors import FieldError, ParameterValidationError
from .models import Range, SearchParameters

# ── Closed vocabularies ────────────────────────────────────────────────────

FOOTBALL_POSITIONS = (
    "GK",
    "CB", "LB", "RB",
    "LWB", "RWB",
    "CDM", "CM", "CAM",
    "LM", "RM",
    "LW", "RW",
    "ST", "CF",
)

MAJOR_LEAGUES = (
    "Premier League",
    "La Liga",
    "Bundesliga",
    "Serie A",
    "Ligue 1",
    "Eredivisie",
    "Primeira Liga",
    "Championship",
    "Champions League",
    "Europa League",
    "Conference League",
    "MLS",
    "Liga MX",
    "Brazilian Serie A",
    "Argentine Primera",
)

TOP_FIVE_LEAGUES = frozenset({"Premier League", "La Liga", "Bundesliga", "Serie A", "Ligue 1"})

PREFERRED_FOOT = ("Left", "Right", "Both")
TRANSFER_STATUS = ("available", "contract_ending", "any")
SORT_FIELDS = ("name", "age", "marketValue", "goals", "assists", "relevance")
SORT_DIRECTIONS = ("asc", "desc")

AGE_BOUNDS = (16, 45)
HEIGHT_BOUNDS = (150, 220)
MARKET_VALUE_MAX = 500_000_000 * 100  # euro cents

Position = Literal[FOOTBALL_POSITIONS]
League = Literal[MAJOR_LEAGUES]


# ── Range models ───────────────────────────────────────────────────────────

class _RangeModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lower_bound: ClassVar[int] = 0
    upper_bound: ClassVar[int] = 0
    label: ClassVar[str] = "value"

    min: int | None = None
    max: int | None = None

    @field_validator("min", "max")
    @classmethod
    def _within_bounds(cls, value: int | None) -> int | None:
        if value is not None and not cls.lower_bound <= value <= cls.upper_bound:
            raise ValueError(f"must be between {cls.lower_bound} and {cls.upper_bound}")
        return value

    @model_validator(mode="after")
    def _ordered(self):
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"Minimum {self.label} cannot be greater than maximum {self.label}")
        return self

    def to_range(self) -> Range | None:
        if self.min is None and self.max is None:
            return None
        return Range(min=self.min, max=self.max)


class AgeRange(_RangeModel):
    lower_bound: ClassVar[int] = AGE_BOUNDS[0]
    upper_bound: ClassVar[int] = AGE_BOUNDS[1]
    label: ClassVar[str] = "age"


class MarketValueRange(_RangeModel):
    upper_bound: ClassVar[int] = MARKET_VALUE_MAX
    label: ClassVar[str] = "market value"


class HeightRange(_RangeModel):
    lower_bound: ClassVar[int] = HEIGHT_BOUNDS[0]
    upper_bound: ClassVar[int] = HEIGHT_BOUNDS[1]
    label: ClassVar[str] = "height"


class GoalsRange(_RangeModel):
    upper_bound: ClassVar[int] = 200
    label: ClassVar[str] = "goals"


class AssistsRange(_RangeModel):
    upper_bound: ClassVar[int] = 200
    label: ClassVar[str] = "assists"


class AppearancesRange(_RangeModel):
    upper_bound: ClassVar[int] = 100
    label: ClassVar[str] = "appearances"


# ── Request model ──────────────────────────────────────────────────────────

Nationality = Annotated[str, StringConstraints(min_length=2, max_length=50)]
ClubName = Annotated[str, StringConstraints(min_length=1, max_length=100)]
Keyword = Annotated[str, StringConstraints(min_length=1, max_length=50)]
Factor = Annotated[str, StringConstraints(max_length=50)]


class SearchParametersSchema(BaseModel):
    """Accepts snake_case or camelCase keys (marketValue, transferStatus, ...)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    position: list[Position] = Field(default_factory=list, max_length=5)
    age: AgeRange | None = None
    nationality: list[Nationality] = Field(default_factory=list, max_length=10)
    league: list[League] = Field(default_factory=list, max_length=10)
    clubs: list[ClubName] = Field(default_factory=list, max_length=20)
    market_value: MarketValueRange | None = None
    height: HeightRange | None = None
    foot: Literal[PREFERRED_FOOT] | None = None
    goals: GoalsRange | None = None
    assists: AssistsRange | None = None
    appearances: AppearancesRange | None = None
    transfer_status: Literal[TRANSFER_STATUS] | None = None
    contract_expiring: bool = False
    keywords: list[Keyword] = Field(default_factory=list, max_length=20)
    name: Annotated[str, StringConstraints(min_length=1, max_length=100)] | None = None

    original_query: str = Field(default="", max_length=1000)
    parsed_intent: str = Field(default="", max_length=500)
    priority_factors: list[Factor] = Field(default_factory=list, max_length=10)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    page: int = Field(default=1, ge=1, le=1000)
    limit: int = Field(default=20, ge=1, le=100)
    sort_by: Literal[SORT_FIELDS] = "relevance"
    sort_direction: Literal[SORT_DIRECTIONS] = "desc"
    exact_match: bool = False
    include_retired: bool = False

    def to_parameters(self) -> SearchParameters:
        def rng(model: _RangeModel | None) -> Range | None:
            return model.to_range() if model is not None else None

        return SearchParameters(
            position=tuple(dict.fromkeys(self.position)),
            age=rng(self.age),
            nationality=tuple(self.nationality),
            league=tuple(self.league),
            clubs=tuple(self.clubs),
            market_value=rng(self.market_value),
            height=rng(self.height),
            foot=self.foot,
            goals=rng(self.goals),
            assists=rng(self.assists),
            appearances=rng(self.appearances),
            transfer_status=self.transfer_status,
            contract_expiring=self.contract_expiring,
            keywords=tuple(self.keywords),
            name=self.name,
            original_query=self.original_query,
            parsed_intent=self.parsed_intent,
            priority_factors=tuple(self.priority_factors),
            confidence=self.confidence,
            page=self.page,
            limit=self.limit,
            sort_by=self.sort_by,
            sort_direction=self.sort_direction,
            exact_match=self.exact_match,
            include_retired=self.include_retired,
        )


def _field_errors(exc: ValidationError) -> list[FieldError]:
    errors = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "request"
        message = err.get("msg", "invalid value")
        # pydantic prefixes custom validator messages
        message = message.removeprefix("Value error, ")
        errors.append(FieldError(field=loc, message=message))
    return errors


def validate(raw: Mapping | SearchParameters) -> SearchParameters:
    """Validate a raw request mapping into frozen SearchParameters.

    Raises ParameterValidationError listing every offending field.
    """
    if isinstance(raw, SearchParameters):
        raw = raw.to_dict()
    if not isinstance(raw, Mapping):
        raise ParameterValidationError([FieldError("request", "must be an object")])
    try:
        model = SearchParametersSchema.model_validate(dict(raw))
    except ValidationError as exc:
        raise ParameterValidationError(_field_errors(exc)) from exc
    return model.to_parameters()
