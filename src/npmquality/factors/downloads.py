"""Download popularity factor."""

from __future__ import annotations

import logging
from datetime import datetime

from npmquality.dates import add_years
from npmquality.factors.base import BaseFactor
from npmquality.models.results import FactorOutcome
from npmquality.models.schemas import PackageEntry
from npmquality.sources.npm import NpmSource

logger = logging.getLogger(__name__)


def downloads_quality(total: int) -> float:
    """1 - 1/total, or 0 for packages nobody downloads."""
    if total <= 0:
        return 0.0
    return 1.0 - 1.0 / total


class DownloadsFactor(BaseFactor):
    """Estimates quality from the number of downloads during the last year."""

    name = "downloads"
    fields = ("downloads",)
    degrade_on_error = True

    def __init__(self, source: NpmSource) -> None:
        self.source = source

    async def _compute(self, entry: PackageEntry, now: datetime) -> FactorOutcome:
        start = add_years(now, -1).date()
        buckets = await self.source.get_downloads(entry.name, start, now.date())
        if not buckets:
            logger.debug(f"No download statistics for {entry.name}")
            return FactorOutcome(factor=self.name, values=self.zero())

        total = 0
        for bucket in buckets:
            if isinstance(bucket, dict) and isinstance(bucket.get("downloads"), int):
                total += bucket["downloads"]
        logger.debug(f"Downloads for {entry.name}: {total}")
        return FactorOutcome(factor=self.name, values={"downloads": (downloads_quality(total), 1.0)})
