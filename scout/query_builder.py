"""
Validated SearchParameters → declarative persistence filter spec.

A FilterSpec is storage-agnostic: the in-memory repository evaluates it
directly, and to_sql()/to_count_sql() render it as parameterised
PostgreSQL for a relational store.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Literal

from .models import Range, SearchParameters

Operator = Literal["eq", "ilike", "in", "gte", "lte"]

# Candidate attribute → players table column
COLUMNS = {
    "name": "name",
    "position": "position",
    "age": "age",
    "nationality": "nationality",
    "club": "current_club",
    "league": "league",
    "market_value": "market_value_euros",
    "height_cm": "height_cm",
    "foot": "preferred_foot",
    "goals": "goals_this_season",
    "assists": "assists_this_season",
    "appearances": "appearances_this_season",
    "contract_expiry": "contract_expires",
    "data_quality": "data_quality_score",
    "is_active": "is_active",
}

SORT_COLUMNS = {
    "name": "name",
    "age": "age",
    "marketValue": "market_value_euros",
    "goals": "goals_this_season",
    "assists": "assists_this_season",
    "relevance": "created_at DESC, market_value_euros",
}

CONTRACT_EXPIRING_WINDOW = timedelta(days=365)


@dataclass(frozen=True)
class FilterCondition:
    field: str
    op: Operator
    value: object


@dataclass(frozen=True)
class SortSpec:
    field: str = "relevance"
    direction: Literal["asc", "desc"] = "desc"


@dataclass(frozen=True)
class FilterSpec:
    conditions: tuple[FilterCondition, ...] = ()
    sort: SortSpec = field(default_factory=SortSpec)
    page: int = 1
    limit: int = 20
    search_id: str | None = None
    keywords: tuple[str, ...] = ()

    # Internal flags
    include_inactive: bool = False
    data_quality_threshold: float = 50
    max_results: int = 1000
    include_stats: bool = True
    include_match_explanation: bool = True

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def conditions_for(self, field_name: str) -> list[FilterCondition]:
        return [c for c in self.conditions if c.field == field_name]


def _range_conditions(field_name: str, rng: Range | None) -> list[FilterCondition]:
    if rng is None:
        return []
    conditions = []
    if rng.min is not None:
        conditions.append(FilterCondition(field_name, "gte", rng.min))
    if rng.max is not None:
        conditions.append(FilterCondition(field_name, "lte", rng.max))
    return conditions


def build_filter_spec(
    parameters: SearchParameters,
    search_id: str | None = None,
    as_of: date | None = None,
    **internal,
) -> FilterSpec:
    """Mechanical translation; every supplied parameter becomes one or two conditions."""
    p = parameters
    conditions: list[FilterCondition] = []

    if p.name:
        if p.exact_match:
            conditions.append(FilterCondition("name", "eq", p.name))
        else:
            conditions.append(FilterCondition("name", "ilike", p.name))
    if p.position:
        conditions.append(FilterCondition("position", "in", tuple(p.position)))
    conditions += _range_conditions("age", p.age)
    if p.nationality:
        conditions.append(FilterCondition("nationality", "in", tuple(p.nationality)))
    if p.clubs:
        conditions.append(FilterCondition("club", "in", tuple(p.clubs)))
    if p.league:
        conditions.append(FilterCondition("league", "in", tuple(p.league)))
    conditions += _range_conditions("market_value", p.market_value)
    conditions += _range_conditions("height_cm", p.height)
    if p.foot:
        conditions.append(FilterCondition("foot", "in", (p.foot, "Both")))
    conditions += _range_conditions("goals", p.goals)
    conditions += _range_conditions("assists", p.assists)
    conditions += _range_conditions("appearances", p.appearances)
    if p.contract_expiring:
        cutoff = (as_of or date.today()) + CONTRACT_EXPIRING_WINDOW
        conditions.append(FilterCondition("contract_expiry", "lte", cutoff))

    internal.setdefault("include_inactive", p.include_retired)
    return FilterSpec(
        conditions=tuple(conditions),
        sort=SortSpec(field=p.sort_by, direction=p.sort_direction),
        page=p.page,
        limit=p.limit,
        search_id=search_id,
        keywords=tuple(p.keywords),
        **internal,
    )


# ── SQL rendering ──────────────────────────────────────────────────────────

_SQL_OPS = {"eq": "=", "gte": ">=", "lte": "<="}


def build_where_clause(spec: FilterSpec) -> tuple[str, list]:
    clauses: list[str] = []
    values: list = []

    def placeholder(value) -> str:
        values.append(value)
        return f"${len(values)}"

    for cond in spec.conditions:
        column = COLUMNS[cond.field]
        if cond.op == "in":
            clauses.append(f"{column} = ANY({placeholder(list(cond.value))})")
        elif cond.op == "ilike":
            clauses.append(f"{column} ILIKE {placeholder(f'%{cond.value}%')}")
        else:
            clauses.append(f"{column} {_SQL_OPS[cond.op]} {placeholder(cond.value)}")

    if not spec.include_inactive:
        clauses.append("is_active = TRUE")
    if spec.data_quality_threshold > 0:
        clauses.append(f"data_quality_score >= {placeholder(spec.data_quality_threshold)}")

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, values


def build_order_by(sort: SortSpec) -> str:
    column = SORT_COLUMNS.get(sort.field, "created_at")
    return f"ORDER BY {column} {sort.direction.upper()}"


def to_sql(spec: FilterSpec) -> tuple[str, list]:
    where, values = build_where_clause(spec)
    limit = min(spec.limit, spec.max_results)
    values = values + [limit, spec.offset]
    query = (
        f"SELECT * FROM players {where} {build_order_by(spec.sort)} "
        f"LIMIT ${len(values) - 1} OFFSET ${len(values)}"
    )
    return " ".join(query.split()), values


def to_count_sql(spec: FilterSpec) -> tuple[str, list]:
    where, values = build_where_clause(spec)
    return " ".join(f"SELECT COUNT(*) AS total FROM players {where}".split()), values
