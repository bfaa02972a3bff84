"""npm registry and download statistics source."""

from __future__ import annotations

import logging
from datetime import date

import httpx

from npmquality.errors import TransientFetchError
from npmquality.models.schemas import PackageEntry
from npmquality.sources.base import BaseSource, PackageNotFoundError, encode_package_name

logger = logging.getLogger(__name__)


class NpmSource(BaseSource):
    """Reads package metadata and download counts from npm.

    Data sources:
    - Package metadata: https://registry.npmjs.org/{package}
    - Download stats: https://api.npmjs.org/downloads/range/{start}:{end}/{package}
    """

    REGISTRY_URL = "https://registry.npmjs.org"
    DOWNLOADS_URL = "https://api.npmjs.org/downloads"

    name = "npm"

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        super().__init__(client=client, timeout=timeout)

    async def get_registry_metadata(self, name: str) -> dict | None:
        """Fetch the registry document of a package.

        Args:
            name: Package name (supports scoped packages like @org/pkg).

        Returns:
            The registry document, or None if the package does not exist.

        Raises:
            TransientFetchError: If the registry cannot be read or parsed.
        """
        url = f"{self.REGISTRY_URL}/{encode_package_name(name)}"
        logger.debug(f"Reading registry metadata from {url}")
        data = await self._fetch_json(url)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise TransientFetchError(self.name, f"unexpected registry document for {name}")
        return data

    async def get_package_entry(self, name: str) -> PackageEntry:
        """Build a worklist entry {name, repository, description} from the registry.

        Raises:
            PackageNotFoundError: If the package doesn't exist.
            TransientFetchError: If the registry cannot be read.
        """
        data = await self.get_registry_metadata(name)
        if data is None:
            raise PackageNotFoundError(name)
        return PackageEntry.model_validate(
            {
                "name": data.get("name", name),
                "repository": data.get("repository"),
                "description": data.get("description"),
            }
        )

    async def get_downloads(self, name: str, start: date, end: date) -> list[dict] | None:
        """Fetch daily download buckets for a date range.

        Returns:
            List of {"day", "downloads"} buckets, or None if npm has no
            statistics for the package.

        Raises:
            TransientFetchError: If the statistics cannot be read or parsed.
        """
        period = f"{start.isoformat()}:{end.isoformat()}"
        url = f"{self.DOWNLOADS_URL}/range/{period}/{encode_package_name(name)}"
        logger.debug(f"Downloads URL: {url}")
        data = await self._fetch_json(url)
        if not isinstance(data, dict) or "downloads" not in data:
            return None
        buckets = data["downloads"]
        if not isinstance(buckets, list):
            raise TransientFetchError(self.name, f"unexpected downloads document for {name}")
        return buckets
