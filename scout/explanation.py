"""
Human-readable match explanations built on MatchScorer's breakdown.

explain() never raises: anything unexpected produces a degraded but valid
explanation. Output depends only on (candidate, parameters, context) and
the scorer's as_of date, so repeated calls are identical.
"""

import logging
import re
from datetime import date

from .models import (
    DetailedScore,
    ExplanationContext,
    MatchedCriterion,
    MatchExplanation,
    MatchStrength,
    SearchParameters,
)
from .scoring import (
    CRITERION_LABELS,
    CandidateFacts,
    MatchScorer,
    format_value,
    format_value_range,
    months_until,
    round_half_up,
)

logger = logging.getLogger(__name__)

DEGRADED_STRENGTH = 50
DEGRADED_CONCERN = "Unable to generate detailed analysis"
DEGRADED_CONTEXT = "Basic match evaluation available"

_FACTOR_KEY_RE = re.compile(r"[^a-z]")


def _factor_key(name: str) -> str:
    """Comparison key: marketValue, "market value" and market_value are one factor."""
    return _FACTOR_KEY_RE.sub("", str(name).lower())


class MatchExplanationService:
    def __init__(self, scorer: MatchScorer | None = None):
        self.scorer = scorer or MatchScorer()

    def explain(
        self,
        candidate,
        parameters: SearchParameters,
        context: ExplanationContext | None = None,
        detailed_score: DetailedScore | None = None,
    ) -> MatchExplanation:
        context = context or ExplanationContext()
        try:
            facts = CandidateFacts.of(candidate)
            params = parameters if parameters is not None else SearchParameters()
            detailed = detailed_score or self.scorer.score(facts, params)

            return MatchExplanation(
                summary=self._summary(facts, detailed, context, params),
                matched_criteria=self._matched_criteria(facts, params, detailed),
                strength_score=max(0, min(100, round_half_up(detailed.percentage))),
                potential_concerns=self._concerns(facts, params, detailed),
                additional_context=self._additional_context(facts, context),
            )
        except Exception:
            logger.exception("Match explanation generation failed")
            return self._degraded(candidate)

    # ── Pieces ─────────────────────────────────────────────────────────────

    def _matched_criteria(self, c: CandidateFacts, params: SearchParameters,
                          detailed: DetailedScore) -> list[MatchedCriterion]:
        criteria = [
            MatchedCriterion(
                criterion=CRITERION_LABELS.get(name, name),
                search_value=self._search_value(name, params),
                candidate_value=self._candidate_value(name, c),
                match_strength=MatchStrength.from_ratio(score.ratio),
                explanation=score.explanation,
            )
            for name, score in detailed.breakdown.items()
            if score.score > 0
        ]
        # Stable: equal strengths keep breakdown order
        return sorted(criteria, key=lambda m: m.match_strength.rank, reverse=True)

    def _summary(self, c: CandidateFacts, detailed: DetailedScore,
                 context: ExplanationContext, params: SearchParameters) -> str:
        percentage = round_half_up(detailed.percentage)
        name = c.display_name

        if percentage >= 80:
            summary = f"{name} is an excellent match ({percentage}%) for your search"
        elif percentage >= 60:
            summary = f"{name} is a good match ({percentage}%) for your requirements"
        elif percentage >= 40:
            summary = f"{name} partially matches ({percentage}%) your criteria"
        else:
            summary = f"{name} has limited alignment ({percentage}%) with your search"

        strong = [
            criterion for criterion, s in detailed.breakdown.items()
            if s.max_score > 0 and s.score >= s.max_score * 0.7
        ]
        priorities = [_factor_key(f) for f in (context.priority_factors or params.priority_factors)]

        def priority(criterion: str) -> int:
            key = _factor_key(criterion)
            return priorities.index(key) if key in priorities else len(priorities)

        top = sorted(strong, key=priority)[:3]
        if top:
            summary += ", particularly in " + ", ".join(CRITERION_LABELS.get(t, t).lower() for t in top)
        return summary + "."

    def _concerns(self, c: CandidateFacts, params: SearchParameters, detailed: DetailedScore) -> list[str]:
        cfg = self.scorer.config
        concerns = [
            f"{CRITERION_LABELS.get(name, name)} doesn't match requirements"
            for name, s in detailed.breakdown.items()
            if s.score == 0 and s.max_score >= cfg.concern_min_weight
        ]

        if c.age is not None and params.age:
            if params.age.max is not None and c.age > params.age.max + cfg.concern_age_over_years:
                concerns.append("Significantly older than preferred")
            if params.age.min is not None and c.age < params.age.min - cfg.concern_age_under_years:
                concerns.append("Much younger than preferred")

        if c.market_value is not None and params.market_value and params.market_value.max is not None:
            if c.market_value > params.market_value.max * cfg.concern_budget_ratio:
                concerns.append("Significantly over budget")

        if c.appearances is not None and c.appearances < cfg.concern_min_appearances:
            concerns.append("Limited playing time this season")

        return concerns

    def _additional_context(self, c: CandidateFacts, context: ExplanationContext) -> str:
        parts = []

        if (c.goals or 0) > 0 or (c.assists or 0) > 0:
            parts.append(
                f"This season: {c.goals or 0} goals, {c.assists or 0} assists "
                f"in {c.appearances or 0} games"
            )

        if c.contract_expiry is not None:
            months = months_until(c.contract_expiry, self.scorer.as_of or date.today())
            if months < 0:
                parts.append("Contract has expired - potential free transfer")
            elif months <= 12:
                parts.append(f"Contract expires in {months} months - potential transfer opportunity")

        if c.league:
            parts.append(f"Currently playing in {c.league}")

        if 1 <= context.result_rank <= 5:
            parts.append(f"Top {context.result_rank} result out of {context.total_results}")

        return ". ".join(parts)

    @staticmethod
    def _search_value(criterion: str, params: SearchParameters) -> str:
        if criterion == "position":
            return ", ".join(params.position)
        if criterion == "age" and params.age:
            return params.age.display()
        if criterion == "nationality":
            return ", ".join(params.nationality)
        if criterion == "league":
            return ", ".join(params.league)
        if criterion == "marketValue" and params.market_value:
            return format_value_range(params.market_value.min, params.market_value.max)
        if criterion == "club":
            return ", ".join(params.clubs)
        if criterion == "contract":
            return "contract expiring" if params.contract_expiring else (params.transfer_status or "")
        if criterion == "physical":
            height = params.height.display() + " cm" if params.height else ""
            return ", ".join(p for p in (height, params.foot or "") if p)
        return "Various criteria"

    @staticmethod
    def _candidate_value(criterion: str, c: CandidateFacts) -> str:
        if criterion == "position":
            return c.position or "Unknown"
        if criterion == "age":
            return str(c.age) if c.age is not None else "Unknown"
        if criterion == "nationality":
            return c.nationality or "Unknown"
        if criterion == "league":
            return c.league or "Unknown"
        if criterion == "marketValue":
            return f"€{format_value(c.market_value)}"
        if criterion == "performance":
            return f"{c.goals or 0}G, {c.assists or 0}A"
        if criterion == "contract":
            return c.contract_expiry.isoformat() if c.contract_expiry else "Unknown"
        if criterion == "club":
            return c.club or "Unknown"
        if criterion == "physical":
            return f"{c.height_cm or '?'} cm, {c.foot or 'Unknown'}"
        return "N/A"

    @staticmethod
    def _degraded(candidate) -> MatchExplanation:
        try:
            name = CandidateFacts.of(candidate).display_name
        except Exception:
            name = "Unknown player"
        return MatchExplanation(
            summary=f"{name} matches several of your search criteria",
            matched_criteria=[],
            strength_score=DEGRADED_STRENGTH,
            potential_concerns=[DEGRADED_CONCERN],
            additional_context=DEGRADED_CONTEXT,
        )
