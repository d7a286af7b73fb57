"""
Player store boundary.

The orchestrator only needs the PlayerRepository protocol. The in-memory
implementation loads players from JSONL and evaluates a FilterSpec itself;
it handles messy rows: missing fields, strings where numbers belong,
bad dates, garbage lines.
"""

import json
import logging
import math
from collections.abc import Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Protocol

from .models import CandidateRecord
from .query_builder import FilterCondition, FilterSpec

logger = logging.getLogger(__name__)


class PlayerRepository(Protocol):
    def search(self, spec: FilterSpec) -> tuple[list[CandidateRecord], int]:
        """Return one page of matching players and the total match count."""
        ...

    def distinct_values(self, field: str) -> list[str]:
        ...


# ── Row parsing ────────────────────────────────────────────────────────────

def safe_float(val) -> float | None:
    if val is None or isinstance(val, bool):
        return None
    try:
        number = float(val)
    except (ValueError, TypeError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def safe_int(val) -> int | None:
    number = safe_float(val)
    return int(number) if number is not None else None


def clean_str(val) -> str | None:
    if val is None:
        return None
    s = " ".join(str(val).split())
    return s if s else None


def safe_date(val) -> date | None:
    """ISO date or datetime (string or object) → date; anything else → None."""
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    if isinstance(val, str):
        try:
            return date.fromisoformat(val.strip()[:10])
        except ValueError:
            return None
    return None


def _first(raw: dict, *keys):
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def record_from_row(raw: dict, fallback_id: str) -> CandidateRecord:
    # Store rows carry whole euros; the core works in cents
    market_value = safe_float(raw.get("market_value_euros"))
    market_value = round(market_value * 100) if market_value is not None else safe_int(raw.get("market_value"))
    position = clean_str(raw.get("position"))
    is_active = raw.get("is_active")

    return CandidateRecord(
        id=str(raw.get("id") or fallback_id),
        name=clean_str(raw.get("name")),
        position=position.upper() if position else None,
        age=safe_int(raw.get("age")),
        nationality=clean_str(raw.get("nationality")),
        club=clean_str(_first(raw, "current_club", "club")),
        market_value=market_value,
        league=clean_str(raw.get("league")),
        height_cm=safe_int(raw.get("height_cm")),
        foot=clean_str(_first(raw, "preferred_foot", "foot")),
        goals=safe_int(_first(raw, "goals_this_season", "goals")),
        assists=safe_int(_first(raw, "assists_this_season", "assists")),
        appearances=safe_int(_first(raw, "appearances_this_season", "appearances")),
        contract_expiry=safe_date(_first(raw, "contract_expires", "contract_expiry")),
        data_quality=safe_float(_first(raw, "data_quality_score", "data_quality")),
        is_active=is_active if isinstance(is_active, bool) else True,
    )


# ── Filter evaluation ──────────────────────────────────────────────────────

def _matches(record: CandidateRecord, cond: FilterCondition) -> bool:
    value = getattr(record, cond.field, None)
    if value is None:
        # Missing data never excludes a player, except for an explicit name search
        return cond.field != "name"

    if cond.op == "in":
        if isinstance(value, str):
            return value.lower() in {str(v).lower() for v in cond.value}
        return value in cond.value
    if cond.op == "ilike":
        return str(cond.value).lower() in str(value).lower()
    if cond.op == "eq":
        if isinstance(value, str):
            return value.lower() == str(cond.value).lower()
        return value == cond.value
    if cond.op == "gte":
        return value >= cond.value
    if cond.op == "lte":
        return value <= cond.value
    raise ValueError(f"Unsupported filter operator: {cond.op}")


_SORT_ATTRS = {
    "name": "name",
    "age": "age",
    "marketValue": "market_value",
    "goals": "goals",
    "assists": "assists",
    "relevance": "market_value",
}


def _sorted(records: list[CandidateRecord], field: str, direction: str) -> list[CandidateRecord]:
    attr = _SORT_ATTRS.get(field, "market_value")
    present = [r for r in records if getattr(r, attr) is not None]
    missing = [r for r in records if getattr(r, attr) is None]

    def key(r):
        v = getattr(r, attr)
        return v.lower() if isinstance(v, str) else v

    # Missing values sort last in either direction
    return sorted(present, key=key, reverse=direction == "desc") + missing


class InMemoryPlayerRepository:
    """Reference PlayerRepository over a list of CandidateRecords."""

    def __init__(self, records: Sequence[CandidateRecord] = ()):
        self.records: list[CandidateRecord] = list(records)

    def __len__(self):
        return len(self.records)

    @staticmethod
    def load(path: str | Path, max_players: int | None = None) -> "InMemoryPlayerRepository":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Dataset not found: {path}")

        records = []
        skipped = 0
        with open(path, "r", encoding="utf-8") as f:
            for i, line in enumerate(f):
                if max_players and len(records) >= max_players:
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    raw = json.loads(line)
                except json.JSONDecodeError:
                    skipped += 1
                    continue
                if not isinstance(raw, dict):
                    skipped += 1
                    continue
                records.append(record_from_row(raw, fallback_id=f"unknown_{i}"))

        logger.info("Loaded %d players from %s (%d malformed lines skipped)", len(records), path, skipped)
        return InMemoryPlayerRepository(records)

    def search(self, spec: FilterSpec) -> tuple[list[CandidateRecord], int]:
        matched = []
        for record in self.records:
            if not spec.include_inactive and not record.is_active:
                continue
            if (
                spec.data_quality_threshold > 0
                and record.data_quality is not None
                and record.data_quality < spec.data_quality_threshold
            ):
                continue
            if all(_matches(record, cond) for cond in spec.conditions):
                matched.append(record)

        matched = _sorted(matched, spec.sort.field, spec.sort.direction)[: spec.max_results]
        page = matched[spec.offset: spec.offset + spec.limit]
        return page, len(matched)

    def distinct_values(self, field: str) -> list[str]:
        values = {getattr(r, field, None) for r in self.records}
        return sorted(v for v in values if isinstance(v, str) and v)
