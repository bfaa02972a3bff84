"""Abstract base class for quality factors."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime

from npmquality.dates import utcnow
from npmquality.errors import TransientFetchError
from npmquality.models.results import FactorOutcome
from npmquality.models.schemas import FactorPair, PackageEntry

logger = logging.getLogger(__name__)


class BaseFactor(ABC):
    """Base class for factors.

    Each factor measures one or more [0, 1] signals for a package and
    reports them as (quality, weight) pairs. Fetch failures are returned in
    the outcome rather than raised; the estimator decides whether a failed
    factor degrades to zero or fails the package, using `degrade_on_error`.
    """

    name: str = "factor"

    # Report zero quality instead of failing the package on fetch errors
    degrade_on_error: bool = True

    # Factor fields this factor reports, each with weight 1
    fields: tuple[str, ...] = ()

    def zero(self) -> dict[str, FactorPair]:
        """Factor pairs reported when there is no evidence."""
        return {field: (0.0, 1.0) for field in self.fields}

    async def estimate(self, entry: PackageEntry, now: datetime | None = None) -> FactorOutcome:
        """Run the factor for a package.

        Args:
            entry: The package to measure.
            now: Reference instant for time windows. Defaults to the current time.

        Returns:
            FactorOutcome with values, a continuation, or the fetch error.
        """
        now = now or utcnow()
        try:
            return await self._compute(entry, now)
        except TransientFetchError as e:
            logger.error(f"Factor {self.name} failed for {entry.name}: {e}")
            return FactorOutcome(factor=self.name, error=e, budget=getattr(e, "budget", None))

    @abstractmethod
    async def _compute(self, entry: PackageEntry, now: datetime) -> FactorOutcome:
        """Compute the factor. May raise TransientFetchError."""
        ...
