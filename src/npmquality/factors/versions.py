"""Version maturity factor."""

from __future__ import annotations

import logging
from datetime import datetime

from npmquality.factors.base import BaseFactor
from npmquality.models.results import FactorOutcome
from npmquality.models.schemas import PackageEntry
from npmquality.sources.npm import NpmSource

logger = logging.getLogger(__name__)


class VersionsFactor(BaseFactor):
    """Estimates quality from the number of published versions: 1 - 1/N."""

    name = "versions"
    fields = ("versions",)
    degrade_on_error = True

    def __init__(self, source: NpmSource) -> None:
        self.source = source

    async def _compute(self, entry: PackageEntry, now: datetime) -> FactorOutcome:
        metadata = await self.source.get_registry_metadata(entry.name)
        versions = metadata.get("versions") if metadata else None
        if not isinstance(versions, dict) or not versions:
            return FactorOutcome(factor=self.name, values=self.zero())

        total = len(versions)
        logger.debug(f"Versions for {entry.name}: {total}")
        return FactorOutcome(factor=self.name, values={"versions": (1.0 - 1.0 / total, 1.0)})
