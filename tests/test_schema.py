"""Request validation and sanitisation tests."""

import pytest

from scout.errors import ParameterValidationError
from scout.models import Range, SearchParameters
from scout.sanitizer import normalize_club, normalize_country, normalize_league, normalize_text, sanitize
from scout.schema import validate


class TestValidate:
    def test_camel_case_request(self):
        params = validate({
            "position": ["ST"],
            "age": {"min": 18, "max": 25},
            "marketValue": {"max": 3_000_000_000},
            "transferStatus": "available",
            "sortBy": "age",
            "sortDirection": "asc",
        })
        assert params.position == ("ST",)
        assert params.age == Range(min=18, max=25)
        assert params.market_value == Range(max=3_000_000_000)
        assert params.transfer_status == "available"
        assert params.sort_by == "age"
        assert params.sort_direction == "asc"

    def test_defaults(self):
        params = validate({})
        assert params == SearchParameters()

    def test_round_trip_of_validated_parameters(self):
        params = validate({"position": ["CB"], "height": {"min": 185}})
        assert validate(params) == params

    def test_age_out_of_bounds(self):
        with pytest.raises(ParameterValidationError) as exc:
            validate({"age": {"min": 10}})
        assert exc.value.errors[0].field == "age.min"
        assert exc.value.errors[0].message == "must be between 16 and 45"

    def test_inverted_range_message(self):
        with pytest.raises(ParameterValidationError) as exc:
            validate({"age": {"min": 30, "max": 20}})
        assert exc.value.errors[0].field == "age"
        assert exc.value.errors[0].message == "Minimum age cannot be greater than maximum age"

    def test_every_offending_field_reported(self):
        with pytest.raises(ParameterValidationError) as exc:
            validate({"position": ["XX"], "limit": 500, "league": ["Sunday League"]})
        fields = {e.field.split(".")[0] for e in exc.value.errors}
        assert fields == {"position", "limit", "league"}

    def test_unknown_field_rejected(self):
        with pytest.raises(ParameterValidationError):
            validate({"salary": 100})

    def test_too_many_positions(self):
        with pytest.raises(ParameterValidationError):
            validate({"position": ["ST", "CF", "LW", "RW", "CAM", "CM"]})

    def test_not_a_mapping(self):
        with pytest.raises(ParameterValidationError) as exc:
            validate(["ST"])
        assert exc.value.errors[0].field == "request"

    def test_duplicate_positions_collapsed(self):
        assert validate({"position": ["ST", "ST"]}).position == ("ST",)


class TestSanitize:
    def test_keys_become_snake_case(self):
        assert sanitize({"marketValue": {"max": 5}, "transferStatus": "Contract Ending"}) == {
            "market_value": {"max": 5},
            "transfer_status": "contract_ending",
        }

    def test_list_fields_accept_comma_strings(self):
        cleaned = sanitize({"position": "st, cf", "nationality": "brasil,USA"})
        assert cleaned["position"] == ["ST", "CF"]
        assert cleaned["nationality"] == ["Brazil", "United States"]

    def test_aliases(self):
        cleaned = sanitize({"league": ["EPL", "la liga"], "clubs": ["Barca", "man utd"]})
        assert cleaned["league"] == ["Premier League", "La Liga"]
        assert cleaned["clubs"] == ["Barcelona", "Manchester United"]

    def test_empty_values_dropped(self):
        assert sanitize({"position": [], "age": {"min": None, "max": None}, "name": None}) == {}

    def test_foot_is_capitalised(self):
        assert sanitize({"foot": "left"})["foot"] == "Left"

    def test_unknown_values_pass_through_for_validation(self):
        cleaned = sanitize({"league": ["Sunday League"]})
        assert cleaned["league"] == ["Sunday League"]
        with pytest.raises(ParameterValidationError):
            validate(cleaned)

    def test_non_mapping(self):
        assert sanitize("striker") == {}

    def test_sanitized_request_validates(self):
        params = validate(sanitize({"position": "cb", "nationality": ["holland"], "sortDirection": " DESC "}))
        assert params.position == ("CB",)
        assert params.nationality == ("Netherlands",)
        assert params.sort_direction == "desc"


class TestNormalizers:
    def test_text(self):
        assert normalize_text("  Vinícius   Júnior!! ") == "Vinícius Júnior"

    def test_country_passthrough(self):
        assert normalize_country("Côte d'Ivoire") == "Côte d'Ivoire"

    def test_club_alias(self):
        assert normalize_club("PSG") == "Paris Saint-Germain"

    def test_league_case(self):
        assert normalize_league("serie a") == "Serie A"
