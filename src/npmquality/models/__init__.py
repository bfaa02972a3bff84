"""Data models and result types."""

from npmquality.models.results import Deferred, EstimationResult, FactorOutcome, Final
from npmquality.models.schemas import (
    FACTOR_FIELDS,
    Continuation,
    Estimation,
    IssueCounts,
    PackageEntry,
    PendingRecord,
    RateBudget,
    RepoInfo,
    RepositoryDescriptor,
)

__all__ = [
    "FACTOR_FIELDS",
    "Continuation",
    "Deferred",
    "Estimation",
    "EstimationResult",
    "FactorOutcome",
    "Final",
    "IssueCounts",
    "PackageEntry",
    "PendingRecord",
    "RateBudget",
    "RepoInfo",
    "RepositoryDescriptor",
]
