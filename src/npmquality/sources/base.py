"""Shared HTTP plumbing for data sources and repository URL parsing."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from npmquality.errors import TransientFetchError
from npmquality.models.schemas import RepoInfo, RepositoryDescriptor

logger = logging.getLogger(__name__)

GITHUB_HOSTS = {"github.com", "www.github.com"}

# Prefixes of the ssh-style "host:owner/name.git" shapes
SSH_PREFIXES = ("git@github.com:", "git://github.com:", "github:")


class BaseSource:
    """Base class for external JSON sources.

    Accepts an optional shared httpx client. When none is given, a client is
    created for each request and closed afterwards.
    """

    name = "source"

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        """Initialize the source.

        Args:
            client: Optional httpx client for making requests.
            timeout: Timeout for clients created by this source.
        """
        self._client = client
        self._timeout = timeout

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create an HTTP client."""
        if self._client is not None:
            return self._client
        return httpx.AsyncClient(timeout=self._timeout)

    async def _get(
        self,
        url: str,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Issue a GET request, converting transport failures."""
        client = await self._get_client()
        try:
            return await client.get(url, params=params, headers=headers or {})
        except httpx.HTTPError as e:
            raise TransientFetchError(self.name, f"could not read {url}: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

    async def _fetch_json(self, url: str, params: dict | None = None) -> Any:
        """Fetch JSON from a URL.

        Returns None on 404.

        Raises:
            TransientFetchError: On any other failure.
        """
        response = await self._get(url, params=params)
        if response.status_code == 404:
            return None
        if response.is_error:
            raise TransientFetchError(
                self.name, f"{url} returned HTTP {response.status_code}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransientFetchError(self.name, f"could not parse {url}: {e}") from e


def encode_package_name(name: str) -> str:
    """URL-encode scoped package names (@scope/name -> @scope%2Fname)."""
    return name.replace("/", "%2F")


def extract_repo_info(repository: RepositoryDescriptor | dict | None) -> RepoInfo:
    """Extract owner and name of a GitHub repository from a descriptor.

    Supported shapes (all with an optional .git suffix):
    - git@github.com:owner/name
    - git://github.com:owner/name
    - github:owner/name
    - <scheme>://github.com/owner/name, including git+https:// and
      ssh://git@github.com/

    Never raises: anything else yields an invalid RepoInfo.

    Args:
        repository: The repository descriptor of a package entry.

    Returns:
        RepoInfo with valid=True and owner/name, or valid=False.
    """
    if isinstance(repository, dict):
        repository = RepositoryDescriptor(
            type=repository.get("type") if isinstance(repository.get("type"), str) else None,
            url=repository.get("url") if isinstance(repository.get("url"), str) else None,
        )
    if repository is None or not repository.type or not repository.url:
        logger.debug(f"Incomplete repository {repository!r}")
        return RepoInfo.invalid()
    if repository.type != "git":
        logger.debug(f"Invalid repository type {repository.type}")
        return RepoInfo.invalid()

    url = repository.url.strip()
    for prefix in SSH_PREFIXES:
        if url.startswith(prefix):
            return _split_pieces(url[len(prefix):].split("/"), 0)

    if url.startswith("git+"):
        url = url[len("git+"):]
    pieces = url.split("/")
    # <scheme>: / (empty) / host / owner / name
    if len(pieces) != 5 or not pieces[0].endswith(":") or pieces[1] != "":
        logger.debug(f"Invalid repository URL {repository.url}")
        return RepoInfo.invalid()
    host = pieces[2].rsplit("@", 1)[-1].lower()
    if host not in GITHUB_HOSTS:
        logger.debug(f"Repository not on GitHub: {repository.url}")
        return RepoInfo.invalid()
    return _split_pieces(pieces, 3)


def _split_pieces(pieces: list[str], initial: int) -> RepoInfo:
    if len(pieces) != initial + 2:
        return RepoInfo.invalid()
    owner = pieces[initial]
    name = pieces[initial + 1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        return RepoInfo.invalid()
    return RepoInfo(valid=True, owner=owner, name=name)


class PackageNotFoundError(Exception):
    """Raised when a package cannot be found in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Package '{name}' not found in npm")
