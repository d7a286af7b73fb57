"""
Deterministic keyword/regex extraction used when the classifier is
unavailable, too slow, or the input is too short to be worth sending.

Every phrase that is recognised is blanked out of the working text, so
later patterns cannot re-match it and whatever is left over becomes the
keyword list.
"""

import re
from decimal import Decimal

from .config import FallbackConfig
from .models import Range, SearchParameters
from .schema import AGE_BOUNDS, HEIGHT_BOUNDS, MARKET_VALUE_MAX

FALLBACK_INTENT = "Basic keyword search (fallback parsing)"

_POSITION_KEYWORDS = {
    "goalkeeper": ["GK"],
    "keeper": ["GK"],
    "gk": ["GK"],
    "centre-back": ["CB"],
    "center-back": ["CB"],
    "central defender": ["CB"],
    "defender": ["CB"],
    "cb": ["CB"],
    "left-back": ["LB"],
    "lb": ["LB"],
    "right-back": ["RB"],
    "rb": ["RB"],
    "full-back": ["LB", "RB"],
    "wing-back": ["LWB", "RWB"],
    "lwb": ["LWB"],
    "rwb": ["RWB"],
    "defensive midfielder": ["CDM"],
    "holding midfielder": ["CDM"],
    "cdm": ["CDM"],
    "attacking midfielder": ["CAM"],
    "playmaker": ["CAM"],
    "cam": ["CAM"],
    "central midfielder": ["CM"],
    "midfielder": ["CM"],
    "cm": ["CM"],
    "left midfielder": ["LM"],
    "right midfielder": ["RM"],
    "left winger": ["LW"],
    "left-wing": ["LW"],
    "lw": ["LW"],
    "right winger": ["RW"],
    "right-wing": ["RW"],
    "rw": ["RW"],
    "winger": ["LW", "RW"],
    "centre-forward": ["CF"],
    "center-forward": ["CF"],
    "cf": ["CF"],
    "striker": ["ST", "CF"],
    "forward": ["ST", "CF"],
    "st": ["ST"],
}

_NATIONALITY_KEYWORDS = {
    "brazil": "Brazil", "brazilian": "Brazil",
    "argentina": "Argentina", "argentine": "Argentina", "argentinian": "Argentina",
    "france": "France", "french": "France",
    "england": "England", "english": "England",
    "spain": "Spain", "spanish": "Spain",
    "germany": "Germany", "german": "Germany",
    "italy": "Italy", "italian": "Italy",
    "portugal": "Portugal", "portuguese": "Portugal",
    "netherlands": "Netherlands", "dutch": "Netherlands",
    "belgium": "Belgium", "belgian": "Belgium",
    "uruguay": "Uruguay", "uruguayan": "Uruguay",
    "colombia": "Colombia", "colombian": "Colombia",
    "nigeria": "Nigeria", "nigerian": "Nigeria",
    "senegal": "Senegal", "senegalese": "Senegal",
    "norway": "Norway", "norwegian": "Norway",
    "croatia": "Croatia", "croatian": "Croatia",
}

_LEAGUE_KEYWORDS = {
    "brazilian serie a": "Brazilian Serie A",
    "argentine primera": "Argentine Primera",
    "premier league": "Premier League",
    "epl": "Premier League",
    "la liga": "La Liga",
    "laliga": "La Liga",
    "bundesliga": "Bundesliga",
    "serie a": "Serie A",
    "ligue 1": "Ligue 1",
    "eredivisie": "Eredivisie",
    "primeira liga": "Primeira Liga",
    "championship": "Championship",
    "champions league": "Champions League",
    "europa league": "Europa League",
    "conference league": "Conference League",
    "mls": "MLS",
    "liga mx": "Liga MX",
}

_STOPWORDS = {
    "the", "and", "with", "for", "from", "who", "that", "are", "has", "have", "can",
    "looking", "look", "find", "need", "want", "show", "search", "get", "me",
    "player", "players", "someone", "plays", "playing", "play",
    "years", "year", "old", "aged", "age", "than", "between",
    "under", "over", "below", "above", "less", "more", "least", "most",
    "in", "of", "a", "an", "or",
}

_UNDER = r"under|below|less\s+than|younger\s+than|shorter\s+than|max(?:imum)?|up\s+to|at\s+most"
_OVER = r"over|above|more\s+than|older\s+than|taller\s+than|min(?:imum)?|at\s+least"


def _phrase(key: str) -> str:
    return r"[\s-]?".join(re.escape(part) for part in re.split(r"[\s-]", key))


def _keyword_patterns(keywords: dict) -> list[tuple[re.Pattern, object]]:
    # Longest phrases first so "defensive midfielder" wins over "midfielder"
    ordered = sorted(keywords.items(), key=lambda item: len(item[0]), reverse=True)
    return [(re.compile(rf"\b{_phrase(key)}s?\b", re.IGNORECASE), value) for key, value in ordered]


_POSITION_PATTERNS = _keyword_patterns(_POSITION_KEYWORDS)
_NATIONALITY_PATTERNS = _keyword_patterns(_NATIONALITY_KEYWORDS)
_LEAGUE_PATTERNS = _keyword_patterns(_LEAGUE_KEYWORDS)

_HEIGHT_CM_RE = re.compile(rf"\b(?:(?P<dir>{_UNDER}|{_OVER})\s+)?(?P<value>\d{{3}})\s*cm\b", re.IGNORECASE)
_HEIGHT_M_RE = re.compile(rf"\b(?:(?P<dir>{_UNDER}|{_OVER})\s+)?(?P<value>[12]\.\d{{1,2}})\s*m\b", re.IGNORECASE)

_VALUE_RE = re.compile(
    rf"(?:\b(?P<dir>{_UNDER}|{_OVER}|budget(?:\s+of)?|worth)\s+)?"
    r"(?:€|eur\s*|euros?\s*)?(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>m|mil|million|k|thousand)\b",
    re.IGNORECASE,
)

_AGE_RANGE_RE = re.compile(
    r"\b(?:between\s+)?(?P<lo>\d{2})\s*(?:-|–|to|and)\s*(?P<hi>\d{2})\b(?!\s*(?:cm|m\b|k\b|mil))",
    re.IGNORECASE,
)
_AGE_BOUND_RE = re.compile(
    rf"\b(?P<dir>{_UNDER}|{_OVER})\s+(?:the\s+age\s+of\s+)?(?P<value>\d{{2}})\b(?!\s*(?:cm|m\b|k\b|mil|[.,]\d))",
    re.IGNORECASE,
)
_AGE_SINGLE_RE = re.compile(
    r"\b(?:(?P<value>\d{2})[\s-]*(?:years?|yrs?)[\s-]*old|aged\s+(?P<aged>\d{2}))\b",
    re.IGNORECASE,
)

_CONTRACT_RE = re.compile(
    r"\b(?:free\s+agents?|contracts?\s+(?:ending|expiring|expires?|running\s+out)|"
    r"expiring\s+contracts?|end\s+of\s+contract)\b",
    re.IGNORECASE,
)
_AVAILABLE_RE = re.compile(r"\bavailable\b", re.IGNORECASE)

_UNDER_RE = re.compile(rf"^(?:{_UNDER})$", re.IGNORECASE)


class _WorkingText:
    """Query text with consumed spans blanked out."""

    def __init__(self, text: str):
        self.value = text

    def take(self, pattern: re.Pattern) -> list[re.Match]:
        matches = list(pattern.finditer(self.value))
        if matches:
            self.value = pattern.sub(lambda m: " " * len(m.group(0)), self.value)
        return matches


def _is_under(direction: str | None) -> bool:
    return bool(direction) and bool(_UNDER_RE.match(re.sub(r"\s+", " ", direction.strip())))


def _clamp(value: int, bounds: tuple[int, int]) -> int:
    return max(bounds[0], min(bounds[1], value))


def _in_bounds(value: int, bounds: tuple[int, int]) -> bool:
    return bounds[0] <= value <= bounds[1]


def _extract_height(text: _WorkingText, config: FallbackConfig) -> Range | None:
    found = [(m, int(m.group("value"))) for m in text.take(_HEIGHT_CM_RE)]
    found += [(m, round(float(m.group("value")) * 100)) for m in text.take(_HEIGHT_M_RE)]
    for match, height in found:
        if not _in_bounds(height, HEIGHT_BOUNDS):
            continue
        direction = match.group("dir")
        if not direction:
            tol = config.height_tolerance_cm
            return Range(min=_clamp(height - tol, HEIGHT_BOUNDS), max=_clamp(height + tol, HEIGHT_BOUNDS))
        if _is_under(direction):
            return Range(max=height)
        return Range(min=height)
    return None


def _extract_market_value(text: _WorkingText) -> Range | None:
    for match in text.take(_VALUE_RE):
        unit = match.group("unit").lower()
        multiplier = 1_000 if unit in ("k", "thousand") else 1_000_000
        cents = min(int(Decimal(match.group("value")) * multiplier * 100), MARKET_VALUE_MAX)
        direction = match.group("dir")
        if direction and not _is_under(direction) and not direction.lower().startswith(("budget", "worth")):
            return Range(min=cents)
        return Range(max=cents)
    return None


def _extract_age(text: _WorkingText, config: FallbackConfig) -> Range | None:
    for match in text.take(_AGE_RANGE_RE):
        lo, hi = sorted((int(match.group("lo")), int(match.group("hi"))))
        if _in_bounds(lo, AGE_BOUNDS) and _in_bounds(hi, AGE_BOUNDS):
            return Range(min=lo, max=hi)

    for match in text.take(_AGE_BOUND_RE):
        age = int(match.group("value"))
        if not _in_bounds(age, AGE_BOUNDS):
            continue
        if _is_under(match.group("dir")):
            return Range(max=age)
        return Range(min=age)

    for match in text.take(_AGE_SINGLE_RE):
        age = int(match.group("value") or match.group("aged"))
        if not _in_bounds(age, AGE_BOUNDS):
            continue
        tol = config.single_age_tolerance
        return Range(min=_clamp(age - tol, AGE_BOUNDS), max=_clamp(age + tol, AGE_BOUNDS))
    return None


def _extract_keywords(text: str) -> list[str]:
    keywords = []
    for raw in text.split():
        word = raw.strip(".,;:!?()[]\"'€$")
        if len(word) <= 2 or len(word) > 50 or any(ch.isdigit() for ch in word):
            continue
        if word.lower() in _STOPWORDS:
            continue
        keywords.append(word)
    return list(dict.fromkeys(keywords))[:20]


def parse_fallback(query: str, config: FallbackConfig | None = None) -> SearchParameters:
    """Regex/keyword extraction of search parameters from *query*."""
    config = config or FallbackConfig()
    text = _WorkingText(query or "")
    factors: list[str] = []

    # Order matters: units and numbers are consumed before the short
    # position codes ("cm", "st") get a chance to match them.
    height = _extract_height(text, config)
    market_value = _extract_market_value(text)
    age = _extract_age(text, config)

    transfer_status = None
    if text.take(_CONTRACT_RE):
        transfer_status = "contract_ending"
    elif text.take(_AVAILABLE_RE):
        transfer_status = "available"

    leagues: list[str] = []
    for pattern, league in _LEAGUE_PATTERNS:
        if text.take(pattern):
            leagues.append(league)

    positions: list[str] = []
    for pattern, codes in _POSITION_PATTERNS:
        if text.take(pattern):
            positions.extend(codes)

    nationalities: list[str] = []
    for pattern, country in _NATIONALITY_PATTERNS:
        if text.take(pattern):
            nationalities.append(country)

    positions = list(dict.fromkeys(positions))[:5]
    nationalities = list(dict.fromkeys(nationalities))[:10]
    leagues = list(dict.fromkeys(leagues))[:10]

    if positions:
        factors.append("position")
    if age:
        factors.append("age")
    if nationalities:
        factors.append("nationality")
    if leagues:
        factors.append("league")
    if market_value:
        factors.append("marketValue")
    if height:
        factors.append("height")
    if transfer_status:
        factors.append("contract")

    return SearchParameters(
        position=tuple(positions),
        age=age,
        nationality=tuple(nationalities),
        league=tuple(leagues),
        market_value=market_value,
        height=height,
        transfer_status=transfer_status,
        keywords=tuple(_extract_keywords(text.value)),
        original_query=query or "",
        parsed_intent=FALLBACK_INTENT,
        priority_factors=tuple(factors),
        confidence=config.confidence,
    )
