"""
Token usage tracker for classifier calls.

Keeps per-session call records in memory and, when given a store path,
appends every call to a JSON file so totals accumulate across runs.
"""

import json
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path

# Pricing per 1M tokens
PRICING = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
}


@dataclass
class APICall:
    timestamp: float
    model: str
    purpose: str  # "query_classification"
    input_tokens: int
    output_tokens: int
    cost_usd: float


def _load_store(path: Path) -> list[dict]:
    if path.exists():
        try:
            return json.loads(path.read_text())
        except (json.JSONDecodeError, ValueError):
            return []
    return []


def _save_store(path: Path, calls: list[dict]):
    path.write_text(json.dumps(calls, indent=2) + "\n")


class TokenTracker:
    def __init__(self, store_path: str | Path | None = None):
        self.store_path = Path(store_path) if store_path else None
        self._session_calls: list[APICall] = []
        self._lock = threading.Lock()

    def log(self, model: str, purpose: str, input_tokens: int, output_tokens: int = 0) -> APICall:
        pricing = PRICING.get(model, {"input": 0.0, "output": 0.0})
        cost = (input_tokens * pricing["input"] + output_tokens * pricing["output"]) / 1_000_000

        call = APICall(
            timestamp=time.time(),
            model=model,
            purpose=purpose,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
        )
        with self._lock:
            self._session_calls.append(call)
            if self.store_path is not None:
                store = _load_store(self.store_path)
                store.append(asdict(call))
                _save_store(self.store_path, store)

        return call

    @property
    def calls(self) -> list[APICall]:
        return list(self._session_calls)

    def summary(self) -> dict:
        """Summary of current session only."""
        return _summarize(self.calls)

    def cumulative_summary(self) -> dict:
        """Summary of all persisted calls (falls back to the session when not persisting)."""
        if self.store_path is None:
            return self.summary()
        return _summarize([APICall(**entry) for entry in _load_store(self.store_path)])

    def reset(self):
        with self._lock:
            self._session_calls.clear()


def _summarize(calls: list[APICall]) -> dict:
    by_purpose: dict[str, dict] = {}
    for call in calls:
        if call.purpose not in by_purpose:
            by_purpose[call.purpose] = {
                "count": 0, "input_tokens": 0, "output_tokens": 0, "cost_usd": 0.0
            }
        s = by_purpose[call.purpose]
        s["count"] += 1
        s["input_tokens"] += call.input_tokens
        s["output_tokens"] += call.output_tokens
        s["cost_usd"] += call.cost_usd

    total_cost = sum(s["cost_usd"] for s in by_purpose.values())
    total_calls = sum(s["count"] for s in by_purpose.values())
    total_tokens = sum(s["input_tokens"] + s["output_tokens"] for s in by_purpose.values())
    return {
        "by_purpose": by_purpose,
        "total_calls": total_calls,
        "total_tokens": total_tokens,
        "total_cost_usd": total_cost,
    }
