"""Search progress events for the transport layer."""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class SearchStage(str, Enum):
    STARTED = "started"
    CLASSIFYING = "classifying"
    VALIDATING = "validating"
    PERSISTENCE_QUERY = "persistence-query"
    EXPLANATION_GENERATION = "explanation-generation"
    RESULTS = "results"
    COMPLETED = "completed"
    ERROR = "error"


STAGE_ORDER = [
    SearchStage.STARTED,
    SearchStage.CLASSIFYING,
    SearchStage.VALIDATING,
    SearchStage.PERSISTENCE_QUERY,
    SearchStage.EXPLANATION_GENERATION,
    SearchStage.RESULTS,
    SearchStage.COMPLETED,
]

STAGE_PROGRESS = {
    SearchStage.STARTED: 0,
    SearchStage.CLASSIFYING: 15,
    SearchStage.VALIDATING: 30,
    SearchStage.PERSISTENCE_QUERY: 50,
    SearchStage.EXPLANATION_GENERATION: 75,
    SearchStage.RESULTS: 90,
    SearchStage.COMPLETED: 100,
}


@dataclass(frozen=True)
class SearchEvent:
    search_id: str
    stage: SearchStage
    progress: int
    payload: dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "searchId": self.search_id,
            "stage": self.stage.value,
            "progress": self.progress,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


EventListener = Callable[[SearchEvent], None]


class ProgressEmitter:
    """Emits one search's events in strict stage order.

    Stages may be skipped (direct-parameter searches skip classifying) but
    never repeated or reordered. An error event ends the sequence; anything
    emitted afterwards is dropped.
    """

    def __init__(self, search_id: str, listener: EventListener | None = None):
        self.search_id = search_id
        self.listener = listener
        self.events: list[SearchEvent] = []
        self._position = -1
        self._terminated = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def last_progress(self) -> int:
        return self.events[-1].progress if self.events else 0

    def emit(self, stage: SearchStage, payload: dict | None = None) -> SearchEvent | None:
        if self._terminated:
            logger.debug("Dropping %s event for finished search %s", stage.value, self.search_id)
            return None

        if stage is SearchStage.ERROR:
            progress = self.last_progress
            self._terminated = True
        else:
            index = STAGE_ORDER.index(stage)
            if index <= self._position:
                raise ValueError(
                    f"Stage {stage.value} emitted out of order for search {self.search_id}"
                )
            self._position = index
            progress = STAGE_PROGRESS[stage]
            self._terminated = stage is SearchStage.COMPLETED

        event = SearchEvent(self.search_id, stage, progress, payload or {})
        self.events.append(event)
        if self.listener is not None:
            try:
                self.listener(event)
            except Exception:
                logger.exception("Progress listener failed on %s for search %s", stage.value, self.search_id)
        return event

    def error(self, failed_stage: SearchStage | None, message: str) -> SearchEvent | None:
        return self.emit(SearchStage.ERROR, {
            "stage": failed_stage.value if failed_stage else None,
            "message": message,
        })
