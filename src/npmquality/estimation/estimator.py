"""Per-package estimation: runs every factor and merges the results."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

import httpx

from npmquality.config import Settings
from npmquality.dates import utcnow
from npmquality.errors import QuotaExhaustedError, ValidationError
from npmquality.estimation.aggregator import aggregate
from npmquality.factors.base import BaseFactor
from npmquality.factors.downloads import DownloadsFactor
from npmquality.factors.issues import ContinuationResolver, IssuesFactor
from npmquality.factors.versions import VersionsFactor
from npmquality.models.results import Deferred, EstimationResult, FactorOutcome, Final
from npmquality.models.schemas import (
    Estimation,
    FactorPair,
    PackageEntry,
    PendingRecord,
    RateBudget,
)
from npmquality.sources.github import GitHubIssuesSource
from npmquality.sources.npm import NpmSource

logger = logging.getLogger(__name__)


def merge_factors(estimation: Estimation, values: dict[str, FactorPair]) -> Estimation:
    """Add factor pairs to an estimation. Factors must not overlap.

    Raises:
        ValueError: If a factor field has already been reported.
    """
    for field in values:
        if getattr(estimation, field, None) is not None:
            raise ValueError(f"Factor field {field} of {estimation.name} reported twice")
    return estimation.model_copy(update=values)


class Estimator:
    """Estimates the quality of a package from independent factors.

    Factors run concurrently. When every factor is final the estimation is
    aggregated and returned as Final; when the issues factor needs more
    pages, the partial estimation is returned as Deferred together with its
    continuations and no quality. Fetch failures are handled here, per
    factor: factors with `degrade_on_error` report zero quality, the others
    fail the package. Quota exhaustion always fails the package.

    Usage:
        async with httpx.AsyncClient(timeout=30.0) as client:
            estimator = Estimator.from_settings(load_settings(), client)
            result = await estimator.estimate(entry)
    """

    def __init__(
        self,
        factors: list[BaseFactor],
        resolver: ContinuationResolver,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the estimator.

        Args:
            factors: Factors to run for each package.
            resolver: Resolver for continuations returned by the issues factor.
            clock: Source of the current time.
        """
        self.factors = factors
        self.resolver = resolver
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
    ) -> Estimator:
        """Build an estimator with the npm and GitHub factors."""
        npm = NpmSource(client=client, timeout=settings.http_timeout)
        github = GitHubIssuesSource(
            token=settings.github_token, client=client, timeout=settings.http_timeout
        )
        return cls(
            factors=[DownloadsFactor(npm), VersionsFactor(npm), IssuesFactor(github)],
            resolver=ContinuationResolver(github),
        )

    async def estimate(self, entry: PackageEntry | dict | None) -> EstimationResult:
        """Estimate a package.

        Args:
            entry: Registry entry {name, repository, description}.

        Returns:
            Final with an aggregated estimation, or Deferred with the partial
            estimation and the continuations still to resolve.

        Raises:
            ValidationError: If the entry is null or has no name.
            QuotaExhaustedError: If the issue tracker quota is used up.
            TransientFetchError: If a factor that does not degrade failed.
        """
        raw = entry
        if isinstance(entry, dict):
            entry = PackageEntry.model_validate(entry)
        if entry is None or not entry.name:
            logger.error(f"Null entry or entry without name: {raw!r}")
            raise ValidationError(raw)

        logger.info(f"Estimating package: {entry.name}")
        now = self.clock()
        estimation = Estimation(
            name=entry.name,
            description=entry.description,
            created=now,
            last_updated=now,
            next_update=now,
            times_updated=0,
        )

        outcomes = await asyncio.gather(*(factor.estimate(entry, now) for factor in self.factors))
        budget = RateBudget.combine(outcome.budget for outcome in outcomes)

        continuations = []
        for factor, outcome in zip(self.factors, outcomes):
            values = self._settle(factor, outcome, entry)
            estimation = merge_factors(estimation, values)
            if outcome.is_pending:
                continuations.append(outcome.continuation)

        if continuations:
            logger.info(f"Package {entry.name} deferred with {len(continuations)} continuation(s)")
            return Deferred(estimation=estimation, continuations=continuations, budget=budget)
        return Final(estimation=aggregate(estimation), budget=budget)

    def _settle(
        self,
        factor: BaseFactor,
        outcome: FactorOutcome,
        entry: PackageEntry,
    ) -> dict[str, FactorPair]:
        """Decide what a factor contributes, raising if it fails the package."""
        if not outcome.failed:
            return outcome.values
        if isinstance(outcome.error, QuotaExhaustedError):
            raise outcome.error
        if factor.degrade_on_error:
            logger.warning(f"Factor {factor.name} of {entry.name} degraded to zero: {outcome.error}")
            return factor.zero()
        raise outcome.error

    async def resolve_pending(self, record: PendingRecord) -> Final:
        """Resolve the continuations of a deferred estimation.

        Args:
            record: Pending record with the partial estimation and its continuations.

        Returns:
            Final with the aggregated estimation and the budget seen while resolving.

        Raises:
            ValueError: If the record has no partial estimation or no continuations.
            QuotaExhaustedError: If the issue tracker quota is used up.
        """
        if record.previous is None or not record.continuations:
            raise ValueError(f"Pending record {record.name} has nothing to resolve")

        now = self.clock()
        estimation = record.previous
        budget = RateBudget()
        for continuation in record.continuations:
            outcome = await self.resolver.resolve(continuation, now)
            estimation = merge_factors(estimation, outcome.values)
            budget = budget.tighten(outcome.budget)
        return Final(estimation=aggregate(estimation), budget=budget)

    async def estimate_complete(self, entry: PackageEntry | dict | None) -> Final:
        """Estimate a package and resolve any continuation inline."""
        result = await self.estimate(entry)
        if isinstance(result, Final):
            return result
        record = PendingRecord(
            name=result.estimation.name,
            entry=entry if isinstance(entry, PackageEntry) else PackageEntry.model_validate(entry),
            previous=result.estimation,
            continuations=result.continuations,
        )
        resolved = await self.resolve_pending(record)
        return Final(estimation=resolved.estimation, budget=result.budget.tighten(resolved.budget))
