"""GitHub issues source with rate limit tracking."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime

import httpx

from npmquality.errors import QuotaExhaustedError, TransientFetchError
from npmquality.models.schemas import RateBudget
from npmquality.sources.base import BaseSource

logger = logging.getLogger(__name__)

ISSUES_PER_PAGE = 100


@dataclass
class IssuesPage:
    """One page of issues plus the response metadata the pipeline needs."""

    issues: list[dict] = field(default_factory=list)
    last_page: int = 1
    budget: RateBudget = field(default_factory=RateBudget)


def parse_rate_budget(headers: httpx.Headers) -> RateBudget:
    """Read remaining calls and reset epoch from GitHub response headers."""
    remaining = headers.get("X-RateLimit-Remaining")
    reset = headers.get("X-RateLimit-Reset")
    try:
        remaining_calls = int(remaining) if remaining is not None else None
    except ValueError:
        remaining_calls = None
    try:
        reset_epoch = int(reset) if reset is not None else None
    except ValueError:
        reset_epoch = None
    return RateBudget(remaining_calls=remaining_calls, reset_epoch=reset_epoch)


def parse_last_page(link_header: str | None) -> int:
    """Extract the page number of rel="last" from a Link header.

    Defaults to 1 when the header is missing or has no usable last link.
    """
    if not link_header:
        return 1
    for element in link_header.split(","):
        if 'rel="last"' not in element:
            continue
        start = element.rfind("<")
        end = element.rfind(">")
        if start == -1 or end <= start:
            break
        try:
            page = httpx.URL(element[start + 1 : end]).params.get("page")
            return max(1, int(page)) if page is not None else 1
        except (ValueError, httpx.InvalidURL):
            break
    logger.warning(f"Link header gave no last page, assuming a single page: {link_header}")
    return 1


class GitHubIssuesSource(BaseSource):
    """Reads issue pages from the GitHub REST API.

    Requires a GitHub personal access token for higher rate limits.
    Set GITHUB_TOKEN environment variable or pass token to constructor.
    """

    BASE_URL = "https://api.github.com"

    name = "github"

    def __init__(
        self,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the source.

        Args:
            token: GitHub personal access token. If not provided, uses GITHUB_TOKEN env var.
            client: Optional httpx client. If not provided, a new client is created per call.
            timeout: Timeout for clients created by this source.
        """
        super().__init__(client=client, timeout=timeout)
        self._token = token or os.environ.get("GITHUB_TOKEN")

    def _headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "npm-quality",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def fetch_issues_page(
        self,
        owner: str,
        name: str,
        page: int,
        since: datetime,
    ) -> IssuesPage | None:
        """Fetch one page of issues updated since a given date.

        Args:
            owner: Repository owner.
            name: Repository name.
            page: Page number, starting at 1.
            since: Only issues updated after this instant are returned.

        Returns:
            IssuesPage, or None if the repository does not exist.

        Raises:
            QuotaExhaustedError: If GitHub reports the rate limit is used up.
            TransientFetchError: On any other failure.
        """
        url = f"{self.BASE_URL}/repos/{owner}/{name}/issues"
        params = {
            "per_page": ISSUES_PER_PAGE,
            "state": "all",
            "since": since.isoformat(),
            "page": page,
        }
        response = await self._get(url, params=params, headers=self._headers())
        budget = parse_rate_budget(response.headers)
        if response.status_code == 404:
            return None
        if response.status_code in (403, 429) and budget.remaining_calls == 0:
            raise QuotaExhaustedError(
                RateBudget(remaining_calls=0, reset_epoch=budget.reset_epoch)
            )

        try:
            body = response.json()
        except ValueError as e:
            if response.is_error:
                raise TransientFetchError(
                    self.name, f"{owner}/{name} page {page} returned HTTP {response.status_code}"
                ) from e
            raise TransientFetchError(
                self.name, f"could not parse issues of {owner}/{name} page {page}: {e}"
            ) from e

        if self._is_quota_error(response, body):
            message = body.get("message") if isinstance(body, dict) else None
            raise QuotaExhaustedError(
                RateBudget(remaining_calls=0, reset_epoch=budget.reset_epoch),
                message or "API rate limit exceeded",
            )
        if response.is_error or not isinstance(body, list):
            raise TransientFetchError(
                self.name,
                f"{owner}/{name} page {page} returned HTTP {response.status_code}",
            )

        return IssuesPage(
            issues=body,
            last_page=parse_last_page(response.headers.get("Link")),
            budget=budget,
        )

    @staticmethod
    def _is_quota_error(response: httpx.Response, body) -> bool:
        if response.status_code not in (403, 429):
            return False
        message = body.get("message", "") if isinstance(body, dict) else ""
        return "rate limit" in message.lower()
