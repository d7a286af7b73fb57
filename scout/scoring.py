"""
Weighted multi-criterion match scoring.

MatchScorer.score() is a pure function of (candidate, parameters): no I/O,
no shared mutable state, no exceptions. Missing or malformed candidate
fields drop the affected criterion to 0 with an explanation instead of
aborting. "Today" for contract arithmetic is fixed by `as_of`.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date

from .config import ScoringConfig
from .models import CriterionScore, DetailedScore, SearchParameters
from .repository import clean_str, safe_date, safe_int
from .schema import TOP_FIVE_LEAGUES

# Expected season output per position: (goals, assists, appearances)
POSITION_BENCHMARKS: dict[str, tuple[int, int, int]] = {
    "ST": (15, 5, 25),
    "CF": (12, 8, 25),
    "LW": (8, 10, 25),
    "RW": (8, 10, 25),
    "CAM": (6, 12, 25),
    "CM": (4, 8, 25),
    "CDM": (2, 6, 25),
    "LB": (1, 4, 25),
    "RB": (1, 4, 25),
    "CB": (2, 2, 25),
    "GK": (0, 0, 25),
}
DEFAULT_BENCHMARK_POSITION = "CM"

# Positions a candidate can credibly cover besides their own
COMPATIBLE_POSITIONS: dict[str, tuple[str, ...]] = {
    "ST": ("CF",),
    "CF": ("ST", "CAM"),
    "LW": ("LM", "LWB"),
    "RW": ("RM", "RWB"),
    "CAM": ("CM", "CF"),
    "CM": ("CDM", "CAM"),
    "CDM": ("CM", "CB"),
    "LB": ("LWB", "LM"),
    "RB": ("RWB", "RM"),
    "CB": ("CDM",),
}

CRITERION_LABELS = {
    "position": "Position",
    "age": "Age",
    "nationality": "Nationality",
    "league": "League",
    "marketValue": "Market value",
    "performance": "Performance",
    "contract": "Contract",
    "club": "Club",
    "physical": "Physical",
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_value(cents: int | None) -> str:
    """Euro cents → compact display string ("12.5M", "750K")."""
    euros = (cents or 0) / 100
    if euros >= 1_000_000:
        return f"{euros / 1_000_000:.1f}M"
    if euros >= 1_000:
        return f"{euros / 1_000:.0f}K"
    return f"{euros:.0f}"


def format_value_range(lo: int | None, hi: int | None) -> str:
    """Budget bounds → "€5.0M-€20.0M", "under €20.0M" or "over €5.0M"."""
    if lo is None and hi is None:
        return "any value"
    if lo is None:
        return f"under €{format_value(hi)}"
    if hi is None:
        return f"over €{format_value(lo)}"
    return f"€{format_value(lo)}-€{format_value(hi)}"


# ── Tolerant candidate access ──────────────────────────────────────────────

_FIELD_ALIASES = {
    "market_value": ("market_value", "marketValue", "market_value_cents"),
    "height_cm": ("height_cm", "heightCm", "height"),
    "goals": ("goals", "goals_this_season", "goalsThisSeason"),
    "assists": ("assists", "assists_this_season", "assistsThisSeason"),
    "appearances": ("appearances", "appearances_this_season", "appearancesThisSeason"),
    "contract_expiry": ("contract_expiry", "contractExpiry", "contract_expires", "contractExpires"),
}


def _raw(candidate, name: str):
    keys = _FIELD_ALIASES.get(name, (name,))
    if isinstance(candidate, Mapping):
        for key in keys:
            if candidate.get(key) is not None:
                return candidate[key]
        return None
    for key in keys:
        value = getattr(candidate, key, None)
        if value is not None:
            return value
    return None


@dataclass(frozen=True)
class CandidateFacts:
    """Type-coerced view of a candidate. Unusable values become None."""

    name: str | None = None
    position: str | None = None
    age: int | None = None
    nationality: str | None = None
    club: str | None = None
    league: str | None = None
    market_value: int | None = None
    height_cm: int | None = None
    foot: str | None = None
    goals: int | None = None
    assists: int | None = None
    appearances: int | None = None
    contract_expiry: date | None = None

    @property
    def display_name(self) -> str:
        return self.name or "Unknown player"

    @classmethod
    def of(cls, candidate) -> "CandidateFacts":
        if candidate is None:
            return cls()
        position = clean_str(_raw(candidate, "position"))
        return cls(
            name=clean_str(_raw(candidate, "name")),
            position=position.upper() if position else None,
            age=safe_int(_raw(candidate, "age")),
            nationality=clean_str(_raw(candidate, "nationality")),
            club=clean_str(_raw(candidate, "club")),
            league=clean_str(_raw(candidate, "league")),
            market_value=safe_int(_raw(candidate, "market_value")),
            height_cm=safe_int(_raw(candidate, "height_cm")),
            foot=clean_str(_raw(candidate, "foot")),
            goals=safe_int(_raw(candidate, "goals")),
            assists=safe_int(_raw(candidate, "assists")),
            appearances=safe_int(_raw(candidate, "appearances")),
            contract_expiry=safe_date(_raw(candidate, "contract_expiry")),
        )


def months_until(expiry: date, as_of: date) -> int:
    """Whole 30-day months between as_of and expiry, rounded half-up."""
    return round_half_up((expiry - as_of).days / 30)


# ── Scorer ─────────────────────────────────────────────────────────────────

class MatchScorer:
    def __init__(self, config: ScoringConfig | None = None, as_of: date | None = None):
        self.config = config or ScoringConfig()
        self.as_of = as_of

    def score(self, candidate, parameters: SearchParameters) -> DetailedScore:
        facts = candidate if isinstance(candidate, CandidateFacts) else CandidateFacts.of(candidate)
        params = parameters if parameters is not None else SearchParameters()
        as_of = self.as_of or date.today()
        cfg = self.config

        breakdown: dict[str, CriterionScore] = {}

        def add(criterion: str, result: tuple[float, str]):
            weight = cfg.weight(criterion)
            points, explanation = result
            breakdown[criterion] = CriterionScore(
                score=max(0, min(weight, round_half_up(points))),
                max_score=weight,
                weight=weight,
                explanation=explanation,
            )

        if params.position:
            add("position", self._position(facts, params.position))
        if params.age and not params.age.is_empty:
            add("age", self._age(facts, params.age))
        if params.nationality:
            add("nationality", self._nationality(facts, params.nationality))
        if params.league:
            add("league", self._league(facts, params.league))
        if params.market_value and not params.market_value.is_empty:
            add("marketValue", self._market_value(facts, params.market_value))
        add("performance", self._performance(facts))
        if params.transfer_status or params.contract_expiring:
            add("contract", self._contract(facts, params, as_of))
        if cfg.weight("club") > 0 and params.clubs:
            add("club", self._club(facts, params.clubs))
        if cfg.weight("physical") > 0 and (params.height or params.foot):
            add("physical", self._physical(facts, params))

        total = sum(c.score for c in breakdown.values())
        max_possible = sum(c.max_score for c in breakdown.values())
        percentage = total / max_possible * 100 if max_possible > 0 else 0.0

        return DetailedScore(
            total_score=total,
            max_possible_score=max_possible,
            percentage=max(0.0, min(100.0, percentage)),
            breakdown=breakdown,
        )

    # ── Criteria ───────────────────────────────────────────────────────────
    # Each returns (points before clamping, explanation).

    def _position(self, c: CandidateFacts, wanted: tuple[str, ...]):
        weight = self.config.weight("position")
        if not c.position:
            return 0, "Player position not specified"
        wanted_upper = [p.upper() for p in wanted]
        if c.position in wanted_upper:
            return weight, f"Perfect position match: {c.position}"
        if any(p in wanted_upper for p in COMPATIBLE_POSITIONS.get(c.position, ())):
            return (
                weight * self.config.compatible_position_credit,
                f"Compatible position: {c.position} can play {', '.join(wanted)}",
            )
        return 0, f"Position mismatch: {c.position} vs requested {', '.join(wanted)}"

    def _age(self, c: CandidateFacts, rng):
        weight = self.config.weight("age")
        if c.age is None:
            return 0, "Player age not specified"
        lo, hi = rng.min, rng.max
        if rng.is_closed:
            if lo <= c.age <= hi:
                return weight, f"Perfect age match: {c.age} within {lo}-{hi} range"
            tolerance = self.config.age_tolerance_years
            if lo - tolerance <= c.age <= hi + tolerance:
                return (
                    weight * self.config.age_tolerance_credit,
                    f"Close to age range: {c.age} near {lo}-{hi}",
                )
        elif hi is not None and c.age <= hi:
            return weight, f"Age requirement met: {c.age} under {hi}"
        elif lo is not None and c.age >= lo:
            return weight, f"Age requirement met: {c.age} over {lo}"
        return 0, f"Age mismatch: {c.age} vs requested {rng.display()}"

    def _nationality(self, c: CandidateFacts, wanted: tuple[str, ...]):
        weight = self.config.weight("nationality")
        if not c.nationality:
            return 0, "Player nationality not specified"
        mine = c.nationality.lower()
        lowered = [n.lower() for n in wanted if n]
        if mine in lowered:
            return weight, f"Nationality match: {c.nationality}"
        if any(n in mine or mine in n for n in lowered):
            return (
                weight * self.config.nationality_partial_credit,
                f"Nationality partial match: {c.nationality}",
            )
        return 0, f"Nationality mismatch: {c.nationality} vs {', '.join(wanted)}"

    def _league(self, c: CandidateFacts, wanted: tuple[str, ...]):
        weight = self.config.weight("league")
        if not c.league:
            return 0, "Player league not specified"
        if c.league.lower() in (lg.lower() for lg in wanted):
            return weight, f"League match: {c.league}"
        if c.league in TOP_FIVE_LEAGUES and any(lg in TOP_FIVE_LEAGUES for lg in wanted):
            return (
                weight * self.config.top_league_credit,
                f"Similar level league: {c.league} (top European league)",
            )
        return 0, f"League mismatch: {c.league} vs {', '.join(wanted)}"

    def _market_value(self, c: CandidateFacts, rng):
        weight = self.config.weight("marketValue")
        value = c.market_value
        if value is None or value < 0:
            return 0, "Player market value not specified"
        lo, hi = rng.min, rng.max
        shown = format_value(value)
        if rng.is_closed and lo <= value <= hi:
            return weight, f"Market value within budget: €{shown}"
        if lo is None and hi is not None and value <= hi:
            return weight, f"Under budget: €{shown} (max €{format_value(hi)})"
        if hi is None and lo is not None and value >= lo:
            return weight, f"Quality player: €{shown} (min €{format_value(lo)})"
        if hi is not None and hi < value <= hi * self.config.market_value_overage_ratio:
            return (
                weight * self.config.market_value_overage_credit,
                f"Slightly over budget: €{shown} (max €{format_value(hi)})",
            )
        return 0, f"Market value mismatch: €{shown}"

    def _performance(self, c: CandidateFacts):
        weight = self.config.weight("performance")
        if not c.position:
            return 0, "Position not specified for performance evaluation"

        goals_b, assists_b, apps_b = POSITION_BENCHMARKS.get(
            c.position, POSITION_BENCHMARKS[DEFAULT_BENCHMARK_POSITION]
        )
        points = 0
        notes = []
        for label, actual, benchmark in (
            ("goals", c.goals, goals_b),
            ("assists", c.assists, assists_b),
            ("appearances", c.appearances, apps_b),
        ):
            if actual is None or actual < 0:
                continue
            tier_points, tier_label = self._performance_tier(actual, benchmark)
            if tier_points:
                points += tier_points
                notes.append(f"{tier_label} {label}: {actual}")

        if not notes:
            return 0, "Limited performance data"
        return min(points, weight), ", ".join(notes)

    def _performance_tier(self, actual: int, benchmark: int) -> tuple[int, str]:
        tiers = self.config.performance_tiers
        if benchmark <= 0:
            # Nothing expected: meeting a zero benchmark is a solid "good"
            return tiers[1][1] if len(tiers) > 1 else tiers[0][1], "Good"
        ratio = actual / benchmark
        labels = ("Excellent", "Good", "Average")
        for i, (threshold, tier_points) in enumerate(tiers):
            if ratio >= threshold:
                return tier_points, labels[min(i, len(labels) - 1)]
        return 0, ""

    def _contract(self, c: CandidateFacts, params: SearchParameters, as_of: date):
        weight = self.config.weight("contract")
        cfg = self.config
        if c.contract_expiry is None:
            return 0, "Contract expiry date not available"
        months = months_until(c.contract_expiry, as_of)
        if params.wants_contract_urgency:
            if months <= cfg.contract_urgent_months:
                return weight, f"Contract expires soon: {months} months (potential bargain)"
            if months <= cfg.contract_soon_months:
                return weight * cfg.contract_soon_credit, f"Contract expires within a year: {months} months"
        elif months > cfg.contract_stable_months:
            return weight * cfg.contract_stable_credit, f"Long-term contract: {months} months remaining"
        return 0, "Contract status neutral"

    def _club(self, c: CandidateFacts, wanted: tuple[str, ...]):
        weight = self.config.weight("club")
        if not c.club:
            return 0, "Player club not specified"
        mine = c.club.lower()
        if any(mine == w.lower() for w in wanted):
            return weight, f"Club match: {c.club}"
        return 0, f"Club mismatch: {c.club} vs {', '.join(wanted)}"

    def _physical(self, c: CandidateFacts, params: SearchParameters):
        weight = self.config.weight("physical")
        checks = []
        if params.height:
            checks.append(c.height_cm is not None and params.height.contains(c.height_cm))
        if params.foot:
            checks.append(bool(c.foot) and c.foot.lower() in (params.foot.lower(), "both"))
        met = sum(checks)
        if not met:
            return 0, "Physical profile does not match"
        height = f"{c.height_cm} cm" if c.height_cm is not None else "height unknown"
        foot = c.foot or "foot unknown"
        return weight * met / len(checks), f"Physical profile: {height}, {foot}"
