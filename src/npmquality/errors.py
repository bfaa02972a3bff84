"""Error taxonomy for the estimation pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from npmquality.models.schemas import RateBudget


class QualityError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(QualityError):
    """Raised when a package entry is null or has no name. Not retried."""

    def __init__(self, entry: object) -> None:
        self.entry = entry
        super().__init__("entry is null or has no name")


class TransientFetchError(QualityError):
    """Raised when an external source cannot be read or parsed."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


class QuotaExhaustedError(TransientFetchError):
    """Raised when the issue tracker reports that the API quota is used up.

    Kept distinct from an empty result so callers pause instead of
    recording a low score.
    """

    def __init__(self, budget: RateBudget, message: str = "API rate limit exceeded") -> None:
        self.budget = budget
        super().__init__("github", message)

    @property
    def reset_epoch(self) -> int | None:
        return self.budget.reset_epoch

    @property
    def reset_time(self) -> datetime | None:
        if self.budget.reset_epoch is None:
            return None
        return datetime.fromtimestamp(self.budget.reset_epoch, tz=timezone.utc)


class StoreError(QualityError):
    """Raised when a single store operation fails or times out."""

    def __init__(self, collection: str, operation: str, message: str) -> None:
        self.collection = collection
        self.operation = operation
        super().__init__(f"{collection}.{operation}: {message}")


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached at all."""
