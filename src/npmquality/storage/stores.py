"""Typed access to the packages and pending collections."""

from __future__ import annotations

import logging

from pydantic import ValidationError as SchemaError

from npmquality.config import Settings
from npmquality.errors import StoreError
from npmquality.models.schemas import Estimation, PendingRecord
from npmquality.storage.collection import JsonCollection

logger = logging.getLogger(__name__)


class EstimationStore:
    """Final estimations, keyed by package name."""

    def __init__(self, collection: JsonCollection) -> None:
        self.collection = collection

    async def ping(self) -> None:
        await self.collection.ping()

    async def find(self, name: str) -> Estimation | None:
        """Return the stored estimation for a package, or None.

        Raises:
            StoreError: If the document cannot be read or is not an estimation.
        """
        document = await self.collection.find_one(name)
        if document is None:
            return None
        try:
            return Estimation.model_validate(document)
        except SchemaError as e:
            raise StoreError(self.collection.name, "find_one", f"invalid estimation {name}: {e}") from e

    async def save(self, estimation: Estimation) -> None:
        await self.collection.upsert(estimation.name, estimation.model_dump(mode="json"))


class PendingStore:
    """Deferred work that must survive restarts, keyed by package name."""

    def __init__(self, collection: JsonCollection) -> None:
        self.collection = collection

    async def ping(self) -> None:
        await self.collection.ping()

    async def save(self, record: PendingRecord) -> None:
        # Replace rather than merge: an old continuation must not linger
        await self.collection.replace(record.name, record.model_dump(mode="json"))

    async def remove(self, name: str) -> bool:
        return await self.collection.delete(name)

    async def list_all(self) -> list[PendingRecord]:
        """Return every pending record. Unreadable records are logged and skipped."""
        records = []
        for document in await self.collection.list_all():
            try:
                records.append(PendingRecord.model_validate(document))
            except SchemaError as e:
                logger.error(f"Invalid pending record {document.get('name')}: {e}")
        return records


def open_stores(settings: Settings) -> tuple[EstimationStore, PendingStore]:
    """Build the packages and pending stores from settings."""
    packages = JsonCollection(settings.data_dir, settings.packages_collection, settings.store_timeout)
    pending = JsonCollection(settings.data_dir, settings.pending_collection, settings.store_timeout)
    return EstimationStore(packages), PendingStore(pending)
