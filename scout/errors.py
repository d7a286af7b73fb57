"""Exception taxonomy for the search pipeline."""

from dataclasses import dataclass


class ScoutError(Exception):
    """Base class for all scouting search errors."""


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ParameterValidationError(ScoutError):
    """Request parameters are malformed or out of range. Aborts the search."""

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        detail = ", ".join(str(e) for e in self.errors) or "invalid parameters"
        super().__init__(f"Invalid search parameters: {detail}")


class ClassifierError(ScoutError):
    """Transient classifier failure: retried, then degraded to fallback parsing."""


class ClassifierUnavailable(ClassifierError):
    """Classifier is not configured. Never retried."""


class PersistenceError(ScoutError):
    """The player store failed in a way the search cannot recover from."""


class AuditLogError(ScoutError):
    """Writing the audit trail failed. Always swallowed by the orchestrator."""


class SearchCancelled(ScoutError):
    """The caller cancelled the search between stages."""
