"""
Normalise free-form request tokens into canonical schema values.

Sanitisation never rejects input: anything it cannot map is passed through
unchanged and left for validation to judge.
"""

import re
from typing import Mapping

from pydantic.alias_generators import to_snake

from .schema import MAJOR_LEAGUES, PREFERRED_FOOT

COUNTRY_ALIASES = {
    "usa": "United States",
    "us": "United States",
    "united states of america": "United States",
    "uk": "England",
    "brasil": "Brazil",
    "deutschland": "Germany",
    "espana": "Spain",
    "españa": "Spain",
    "italia": "Italy",
    "holland": "Netherlands",
    "the netherlands": "Netherlands",
    "ivory coast": "Côte d'Ivoire",
    "korea republic": "South Korea",
}

CLUB_ALIASES = {
    "man utd": "Manchester United",
    "man united": "Manchester United",
    "man city": "Manchester City",
    "fc barcelona": "Barcelona",
    "barca": "Barcelona",
    "bayern munich": "Bayern München",
    "bayern": "Bayern München",
    "psg": "Paris Saint-Germain",
    "spurs": "Tottenham Hotspur",
    "inter": "Inter Milan",
    "juve": "Juventus",
    "atleti": "Atlético Madrid",
}

LEAGUE_ALIASES = {
    "epl": "Premier League",
    "english premier league": "Premier League",
    "laliga": "La Liga",
    "la liga santander": "La Liga",
    "serie a tim": "Serie A",
    "ligue 1 uber eats": "Ligue 1",
    "liga portugal": "Primeira Liga",
    "efl championship": "Championship",
    "ucl": "Champions League",
    "uefa champions league": "Champions League",
    "uel": "Europa League",
    "major league soccer": "MLS",
}
_LEAGUES_BY_LOWER = {league.lower(): league for league in MAJOR_LEAGUES}

_TEXT_FIELDS = ("name",)
_STRIP_FIELDS = ("original_query", "parsed_intent")
_LIST_FIELDS = ("position", "nationality", "league", "clubs", "keywords", "priority_factors")

_NON_WORD_RE = re.compile(r"[^\w\s\-']")
_SPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    text = _SPACE_RE.sub(" ", str(text).strip())
    return _NON_WORD_RE.sub("", text)


def normalize_country(country: str) -> str:
    normalized = normalize_text(country)
    return COUNTRY_ALIASES.get(normalized.lower(), normalized)


def normalize_club(club: str) -> str:
    normalized = normalize_text(club)
    return CLUB_ALIASES.get(normalized.lower(), normalized)


def normalize_league(league: str) -> str:
    normalized = _SPACE_RE.sub(" ", str(league).strip())
    key = normalized.lower()
    return LEAGUE_ALIASES.get(key) or _LEAGUES_BY_LOWER.get(key) or normalized


def normalize_position(position: str) -> str:
    return str(position).strip().upper()


def _as_list(value) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [part for part in re.split(r"\s*,\s*", value) if part]
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _dedupe(values: list) -> list:
    return list(dict.fromkeys(values))


def _is_empty(value) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, tuple)) and not value:
        return True
    if isinstance(value, Mapping) and all(v is None for v in value.values()):
        return True
    return False


def sanitize(raw: Mapping) -> dict:
    """Return a normalised copy of *raw* with snake_case keys."""
    if not isinstance(raw, Mapping):
        return {}

    params = {to_snake(str(key)): value for key, value in raw.items()}

    for key in _LIST_FIELDS:
        if key in params:
            params[key] = _as_list(params[key])

    for key in _TEXT_FIELDS:
        if isinstance(params.get(key), str):
            params[key] = normalize_text(params[key]) or None

    for key in _STRIP_FIELDS:
        if isinstance(params.get(key), str):
            params[key] = params[key].strip()

    if "position" in params:
        params["position"] = _dedupe([normalize_position(p) for p in params["position"]])

    if "nationality" in params:
        params["nationality"] = _dedupe([normalize_country(n) for n in params["nationality"] if str(n).strip()])

    if "clubs" in params:
        params["clubs"] = _dedupe([normalize_club(c) for c in params["clubs"] if str(c).strip()])

    if "league" in params:
        params["league"] = _dedupe([normalize_league(lg) for lg in params["league"] if str(lg).strip()])

    if "keywords" in params:
        keywords = (normalize_text(k) for k in params["keywords"])
        params["keywords"] = _dedupe([k for k in keywords if k])

    if isinstance(params.get("transfer_status"), str):
        params["transfer_status"] = re.sub(r"[\s\-]+", "_", params["transfer_status"].strip().lower())

    if isinstance(params.get("foot"), str):
        foot = params["foot"].strip().capitalize()
        params["foot"] = foot if foot in PREFERRED_FOOT else params["foot"]

    for key in ("sort_direction",):
        if isinstance(params.get(key), str):
            params[key] = params[key].strip().lower()

    return {key: value for key, value in params.items() if not _is_empty(value)}
