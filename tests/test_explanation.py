"""MatchExplanationService tests."""

from datetime import date

from scout.explanation import DEGRADED_CONCERN, DEGRADED_CONTEXT, MatchExplanationService
from scout.models import CandidateRecord, ExplanationContext, MatchStrength, Range, SearchParameters
from scout.scoring import MatchScorer

from .conftest import AS_OF


class BrokenScorer(MatchScorer):
    def score(self, candidate, parameters):
        raise RuntimeError("scoring exploded")


class TestSummary:
    def test_excellent_match_lists_strong_criteria(self, scorer, brazilian_striker, striker_params):
        explanation = MatchExplanationService(scorer).explain(brazilian_striker, striker_params)

        assert explanation.strength_score == 80
        assert explanation.summary == (
            "Gabriel Nunes is an excellent match (80%) for your search, "
            "particularly in position, age, nationality."
        )

    def test_priority_factors_order_strong_criteria(self, scorer, brazilian_striker, striker_params):
        context = ExplanationContext(priority_factors=("nationality",))
        explanation = MatchExplanationService(scorer).explain(brazilian_striker, striker_params, context)
        assert "particularly in nationality, position, age." in explanation.summary

    def test_tiers(self, scorer):
        service = MatchExplanationService(scorer)
        params = SearchParameters(position=("ST",), age=Range(min=18, max=25))

        weak = service.explain(CandidateRecord(id="1", name="Far Off", position="GK", age=35), params)
        assert weak.summary.startswith("Far Off has limited alignment (0%) with your search")

        partial = service.explain(CandidateRecord(id="2", name="Half Way", position="CF", age=27), params)
        assert "partially matches" in partial.summary

    def test_unnamed_candidate(self, scorer, striker_params):
        explanation = MatchExplanationService(scorer).explain(CandidateRecord(id="x"), striker_params)
        assert explanation.summary.startswith("Unknown player")


class TestMatchedCriteria:
    def test_only_scoring_criteria_sorted_by_strength(self, scorer, brazilian_striker, striker_params):
        explanation = MatchExplanationService(scorer).explain(brazilian_striker, striker_params)

        names = [m.criterion for m in explanation.matched_criteria]
        assert names == ["Position", "Age", "Nationality", "Performance"]
        strengths = [m.match_strength for m in explanation.matched_criteria]
        assert strengths[:3] == [MatchStrength.PERFECT] * 3
        assert strengths[3] == MatchStrength.PARTIAL

    def test_values_are_display_strings(self, scorer, brazilian_striker, striker_params):
        explanation = MatchExplanationService(scorer).explain(brazilian_striker, striker_params)
        position = explanation.matched_criteria[0]
        assert position.search_value == "ST, CF"
        assert position.candidate_value == "ST"
        assert position.explanation == "Perfect position match: ST"

    def test_open_budget_displayed_as_bound(self, scorer):
        params = SearchParameters(market_value=Range(max=2_000_000_000))
        candidate = CandidateRecord(id="1", market_value=1_500_000_000)
        explanation = MatchExplanationService(scorer).explain(candidate, params)

        market = next(m for m in explanation.matched_criteria if m.criterion == "Market value")
        assert market.search_value == "under €20.0M"
        assert market.candidate_value == "€15.0M"


class TestConcerns:
    def test_heavy_zero_criterion_is_a_concern(self, scorer, brazilian_striker, striker_params):
        explanation = MatchExplanationService(scorer).explain(brazilian_striker, striker_params)
        assert explanation.potential_concerns == ["League doesn't match requirements"]

    def test_age_and_budget_concerns(self, scorer):
        params = SearchParameters(age=Range(min=18, max=25), market_value=Range(max=1_000_000_000))
        veteran = CandidateRecord(id="1", age=30, market_value=2_000_000_000, appearances=5)
        concerns = MatchExplanationService(scorer).explain(veteran, params).potential_concerns

        assert "Significantly older than preferred" in concerns
        assert "Significantly over budget" in concerns
        assert "Limited playing time this season" in concerns

    def test_much_younger(self, scorer):
        params = SearchParameters(age=Range(min=25, max=30))
        concerns = MatchExplanationService(scorer).explain(CandidateRecord(id="1", age=20), params).potential_concerns
        assert "Much younger than preferred" in concerns


class TestAdditionalContext:
    def test_season_league_and_rank(self, scorer, brazilian_striker, striker_params):
        context = ExplanationContext(result_rank=2, total_results=14)
        explanation = MatchExplanationService(scorer).explain(brazilian_striker, striker_params, context)
        assert explanation.additional_context == (
            "This season: 11 goals, 3 assists in 24 games. "
            "Currently playing in Serie B. "
            "Top 2 result out of 14"
        )

    def test_rank_outside_top_five_not_mentioned(self, scorer, brazilian_striker, striker_params):
        context = ExplanationContext(result_rank=6, total_results=14)
        explanation = MatchExplanationService(scorer).explain(brazilian_striker, striker_params, context)
        assert "Top" not in explanation.additional_context

    def test_contract_notes(self, scorer):
        service = MatchExplanationService(scorer)
        expired = CandidateRecord(id="1", contract_expiry=date(2025, 1, 1))
        expiring = CandidateRecord(id="2", contract_expiry=date(2025, 11, 1))

        assert service.explain(expired, SearchParameters()).additional_context == (
            "Contract has expired - potential free transfer"
        )
        assert service.explain(expiring, SearchParameters()).additional_context == (
            "Contract expires in 4 months - potential transfer opportunity"
        )


class TestRobustness:
    def test_scorer_failure_degrades(self, brazilian_striker, striker_params):
        explanation = MatchExplanationService(BrokenScorer(as_of=AS_OF)).explain(brazilian_striker, striker_params)

        assert explanation.summary == "Gabriel Nunes matches several of your search criteria"
        assert explanation.strength_score == 50
        assert explanation.matched_criteria == []
        assert explanation.potential_concerns == [DEGRADED_CONCERN]
        assert explanation.additional_context == DEGRADED_CONTEXT

    def test_malformed_candidate_still_explained(self, scorer, striker_params):
        explanation = MatchExplanationService(scorer).explain({"age": "old", "position": None}, striker_params)
        assert 0 <= explanation.strength_score <= 100
        assert explanation.summary

    def test_precomputed_score_is_used(self, scorer, brazilian_striker, striker_params):
        detailed = scorer.score(brazilian_striker, striker_params)
        service = MatchExplanationService(BrokenScorer(as_of=AS_OF))
        explanation = service.explain(brazilian_striker, striker_params, detailed_score=detailed)
        assert explanation.strength_score == 80

    def test_repeatable(self, scorer, brazilian_striker, striker_params):
        service = MatchExplanationService(scorer)
        assert service.explain(brazilian_striker, striker_params) == service.explain(brazilian_striker, striker_params)

    def test_to_dict_uses_plain_strength_values(self, scorer, brazilian_striker, striker_params):
        data = MatchExplanationService(scorer).explain(brazilian_striker, striker_params).to_dict()
        assert data["matched_criteria"][0]["match_strength"] == "perfect"
