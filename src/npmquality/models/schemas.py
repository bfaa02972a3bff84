"""Pydantic models for package entries, estimations and pending work."""

from __future__ import annotations

import math
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

# A factor value is a (quality, weight) pair, both floats in [0, 1].
FactorPair = tuple[float, float]

# Factor fields of an Estimation, in the order they are reported.
FACTOR_FIELDS = (
    "downloads",
    "versions",
    "repo_total_issues",
    "repo_open_issues",
    "repo_long_open_issues",
)


class RepositoryDescriptor(BaseModel):
    """Repository field of a registry entry, e.g. {"type": "git", "url": "..."}."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    url: str | None = None


class PackageEntry(BaseModel):
    """A package as listed by the registry."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    repository: RepositoryDescriptor | None = None
    description: str | None = None

    @field_validator("repository", mode="before")
    @classmethod
    def _coerce_repository(cls, value):
        # npm allows the shorthand form "repository": "github:owner/name"
        if isinstance(value, str):
            return {"type": "git", "url": value}
        if not isinstance(value, dict):
            return None
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)


class RepoInfo(BaseModel):
    """Owner and name of a GitHub repository."""

    valid: bool = False
    owner: str | None = None
    name: str | None = None

    @classmethod
    def invalid(cls) -> RepoInfo:
        return cls(valid=False)


class RateBudget(BaseModel):
    """Remaining calls and reset time of the issue tracker's global quota.

    Budgets observed by concurrent calls are combined with `tighten`, which
    keeps the smallest remaining count. A budget is never raised by merging.
    """

    remaining_calls: int | None = None
    reset_epoch: int | None = None

    @property
    def is_known(self) -> bool:
        return self.remaining_calls is not None

    def tighten(self, other: RateBudget | None) -> RateBudget:
        """Return the more conservative of two budgets."""
        if other is None or not other.is_known:
            return self
        if not self.is_known:
            return other
        if other.remaining_calls < self.remaining_calls:
            return other
        return self

    def wait_seconds(self, needed_calls: int, now_epoch: float) -> float:
        """Seconds to wait before issuing `needed_calls` more requests.

        Zero when the budget is unknown, large enough, or already reset.
        """
        if not self.is_known or self.reset_epoch is None:
            return 0.0
        if self.remaining_calls >= needed_calls:
            return 0.0
        if self.reset_epoch <= now_epoch:
            return 0.0
        return float(self.reset_epoch - now_epoch)

    @classmethod
    def combine(cls, budgets) -> RateBudget:
        """Tighten an iterable of budgets (None entries are ignored)."""
        result = cls()
        for budget in budgets:
            result = result.tighten(budget)
        return result


class IssueCounts(BaseModel):
    """Issue counters accumulated across pages. Merging is plain addition."""

    total: int = 0
    open: int = 0
    closed: int = 0
    long_open: int = 0

    def merge(self, other: IssueCounts) -> IssueCounts:
        return IssueCounts(
            total=self.total + other.total,
            open=self.open + other.open,
            closed=self.closed + other.closed,
            long_open=self.long_open + other.long_open,
        )


class Continuation(BaseModel):
    """Partial issue accumulator for a repository with more than one page.

    `pages` holds the next page to fetch and the last page, both inclusive.
    """

    factor: str = "issues"
    owner: str
    name: str
    pages: tuple[int, int]
    total: int = 0
    open: int = 0
    closed: int = 0
    long_open: int = 0

    @property
    def counts(self) -> IssueCounts:
        return IssueCounts(
            total=self.total, open=self.open, closed=self.closed, long_open=self.long_open
        )

    @property
    def page_numbers(self) -> range:
        return range(self.pages[0], self.pages[1] + 1)

    @property
    def pages_remaining(self) -> int:
        return max(0, self.pages[1] - self.pages[0] + 1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Estimation(BaseModel):
    """Quality estimation of a single package.

    Factor fields hold (quality, weight) pairs and stay None until the
    corresponding factor has reported. `quality` is only set by the
    aggregator, once every factor is final. Extra fields are allowed so
    documents written by other tools survive a round trip through the store.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    description: str | None = None
    source: str = "npm"
    created: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)
    next_update: datetime = Field(default_factory=_utcnow)
    times_updated: int = 0
    quality: float | None = None

    # Factors
    downloads: FactorPair | None = None
    versions: FactorPair | None = None
    repo_total_issues: FactorPair | None = None
    repo_open_issues: FactorPair | None = None
    repo_long_open_issues: FactorPair | None = None

    @field_validator(*FACTOR_FIELDS)
    @classmethod
    def _check_pair(cls, value):
        if value is None:
            return value
        quality, weight = value
        if math.isnan(quality) or math.isnan(weight):
            raise ValueError("factor values must be numbers")
        if not 0.0 <= weight <= 1.0:
            raise ValueError(f"factor weight {weight} outside [0, 1]")
        return value

    def factor_values(self) -> dict[str, FactorPair]:
        """Return the factors that have reported so far."""
        return {
            field: getattr(self, field)
            for field in FACTOR_FIELDS
            if getattr(self, field) is not None
        }


class PendingRecord(BaseModel):
    """Deferred work for one package, kept in the pending collection.

    Records with continuations resume a partial estimation; records without
    continuations ask for the whole package to be estimated again.
    """

    name: str
    entry: PackageEntry
    previous: Estimation | None = None
    continuations: list[Continuation] = Field(default_factory=list)
    reason: str = "pagination"
    created: datetime = Field(default_factory=_utcnow)

    @property
    def pages_needed(self) -> int:
        """Issue tracker calls needed to finish this record."""
        if not self.continuations:
            return 1
        return sum(c.pages_remaining for c in self.continuations)
