"""
Search audit trail: one record per search, one per ranked result.

Sinks may raise AuditLogError; the orchestrator logs and swallows it.
"""

import json
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from .errors import AuditLogError


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SearchQueryRecord:
    search_id: str
    query_text: str
    parsed_criteria: str  # JSON blob of the validated SearchParameters
    caller: str | None = None
    created_at: datetime = field(default_factory=_now)


@dataclass(frozen=True)
class SearchResultRecord:
    search_id: str
    player_id: str
    match_score: int  # 0-100
    result_rank: int  # 1-based
    created_at: datetime = field(default_factory=_now)


class AuditLog(Protocol):
    def record_query(self, record: SearchQueryRecord) -> None: ...

    def record_results(self, records: list[SearchResultRecord]) -> None: ...


class InMemoryAuditLog:
    def __init__(self):
        self.queries: list[SearchQueryRecord] = []
        self.results: list[SearchResultRecord] = []
        self._lock = threading.Lock()

    def record_query(self, record: SearchQueryRecord) -> None:
        with self._lock:
            self.queries.append(record)

    def record_results(self, records: list[SearchResultRecord]) -> None:
        with self._lock:
            self.results.extend(records)

    def results_for(self, search_id: str) -> list[SearchResultRecord]:
        return [r for r in self.results if r.search_id == search_id]


class JsonlAuditLog:
    """Appends audit records to a JSONL file, one object per line."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _append(self, kind: str, records: list) -> None:
        lines = []
        for record in records:
            data = asdict(record)
            data["created_at"] = record.created_at.isoformat()
            lines.append(json.dumps({"type": kind, **data}))
        try:
            with self._lock, open(self.path, "a", encoding="utf-8") as f:
                f.write("".join(line + "\n" for line in lines))
        except OSError as e:
            raise AuditLogError(f"Could not write audit log {self.path}: {e}") from e

    def record_query(self, record: SearchQueryRecord) -> None:
        self._append("search_query", [record])

    def record_results(self, records: list[SearchResultRecord]) -> None:
        if records:
            self._append("search_result", records)
