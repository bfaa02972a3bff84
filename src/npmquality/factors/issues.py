"""Issue tracker health factor, with pagination and continuations.

The first page of issues is always fetched inline. Repositories with more
than one page are not finished inline: the factor returns a Continuation
carrying the counts of page 1, so a single busy repository does not spend
the shared GitHub budget before the other packages of its chunk have had
their first page. ContinuationResolver finishes the work later.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from npmquality.dates import add_years, parse_timestamp, utcnow
from npmquality.errors import QuotaExhaustedError
from npmquality.factors.base import BaseFactor
from npmquality.models.results import FactorOutcome
from npmquality.models.schemas import (
    Continuation,
    FactorPair,
    IssueCounts,
    PackageEntry,
    RateBudget,
)
from npmquality.sources.base import extract_repo_info
from npmquality.sources.github import GitHubIssuesSource, IssuesPage

logger = logging.getLogger(__name__)

LONG_OPEN_DAYS = 365
OPEN_RATIO_THRESHOLD = 0.2


def count_issues(issues: list, now: datetime) -> IssueCounts:
    """Count total, open, closed and long-open issues in a page."""
    total = open_ = closed = long_open = 0
    for issue in issues:
        if not isinstance(issue, dict):
            logger.error(f"Invalid issue in page: {issue!r}")
            continue
        total += 1
        state = issue.get("state")
        if state == "open":
            open_ += 1
            created = parse_timestamp(issue.get("created_at"))
            if created is not None and (now - created).days > LONG_OPEN_DAYS:
                long_open += 1
        elif state == "closed":
            closed += 1
        else:
            logger.debug(f"Invalid issue state {state}")
    return IssueCounts(total=total, open=open_, closed=closed, long_open=long_open)


def issue_factors(counts: IssueCounts) -> dict[str, FactorPair]:
    """Compute the three issue sub-factors from final counts.

    No issues at all scores zero on every sub-factor.
    """
    if counts.total == 0:
        return {
            "repo_total_issues": (0.0, 1.0),
            "repo_open_issues": (0.0, 1.0),
            "repo_long_open_issues": (0.0, 1.0),
        }
    open_ratio = counts.open / counts.total
    total_factor = 1.0 - 1.0 / counts.total
    open_factor = 1.2 - open_ratio if open_ratio > OPEN_RATIO_THRESHOLD else 1.0
    long_open_factor = 1.0 - counts.long_open / counts.open if counts.open > 0 else 1.0
    return {
        "repo_total_issues": (total_factor, 1.0),
        "repo_open_issues": (open_factor, 1.0),
        "repo_long_open_issues": (long_open_factor, 1.0),
    }


class IssuesFactor(BaseFactor):
    """Estimates quality from issues updated during the last year."""

    name = "issues"
    fields = ("repo_total_issues", "repo_open_issues", "repo_long_open_issues")
    degrade_on_error = False

    def __init__(self, source: GitHubIssuesSource) -> None:
        self.source = source

    async def _compute(self, entry: PackageEntry, now: datetime) -> FactorOutcome:
        info = extract_repo_info(entry.repository)
        if not info.valid:
            logger.info(f"Invalid or missing repository for {entry.name}: {entry.repository!r}")
            return FactorOutcome(factor=self.name, values=self.zero())

        page = await self.source.fetch_issues_page(info.owner, info.name, 1, add_years(now, -1))
        if page is None:
            logger.info(f"Repository {info.owner}/{info.name} of {entry.name} not found")
            return FactorOutcome(factor=self.name, values=self.zero())

        counts = count_issues(page.issues, now)
        logger.debug(f"Issues received for {info.owner}/{info.name}: {len(page.issues)}")

        if page.last_page <= 1:
            return FactorOutcome(
                factor=self.name, values=issue_factors(counts), budget=page.budget
            )

        logger.info(f"Repository {info.owner}/{info.name} has {page.last_page} pages of issues")
        continuation = Continuation(
            owner=info.owner,
            name=info.name,
            pages=(2, page.last_page),
            **counts.model_dump(),
        )
        return FactorOutcome(factor=self.name, continuation=continuation, budget=page.budget)


class ContinuationResolver:
    """Finishes an issue computation started by IssuesFactor.

    Pages are fetched concurrently and their counts added to the carried
    accumulator. A page that fails contributes no issues; a page reporting
    quota exhaustion fails the whole continuation, since counting it as
    empty would record a misleadingly low score.
    """

    def __init__(self, source: GitHubIssuesSource) -> None:
        self.source = source

    async def collect(
        self,
        continuation: Continuation,
        now: datetime | None = None,
    ) -> tuple[IssueCounts, RateBudget]:
        """Fetch the remaining pages and merge them into the carried counts.

        Returns:
            Final counts and the most conservative budget seen across pages.

        Raises:
            QuotaExhaustedError: If any page hit the rate limit.
        """
        now = now or utcnow()
        since = add_years(now, -1)
        pages = list(continuation.page_numbers)
        logger.info(
            f"Pending {len(pages)} pages of {continuation.owner}/{continuation.name}"
        )

        results = await asyncio.gather(
            *(
                self.source.fetch_issues_page(continuation.owner, continuation.name, page, since)
                for page in pages
            ),
            return_exceptions=True,
        )

        counts = continuation.counts
        budget = RateBudget()
        quota_error: QuotaExhaustedError | None = None
        for page, result in zip(pages, results):
            if isinstance(result, QuotaExhaustedError):
                budget = budget.tighten(result.budget)
                quota_error = result
            elif isinstance(result, Exception):
                logger.warning(
                    f"Page {page} of {continuation.owner}/{continuation.name} failed, "
                    f"counting no issues: {result}"
                )
            elif isinstance(result, BaseException):
                raise result
            elif isinstance(result, IssuesPage):
                counts = counts.merge(count_issues(result.issues, now))
                budget = budget.tighten(result.budget)

        if quota_error is not None:
            raise QuotaExhaustedError(budget) from quota_error
        return counts, budget

    async def resolve(
        self,
        continuation: Continuation,
        now: datetime | None = None,
    ) -> FactorOutcome:
        """Resolve a continuation into final issue factors.

        Raises:
            QuotaExhaustedError: If any page hit the rate limit.
        """
        counts, budget = await self.collect(continuation, now)
        logger.debug(
            f"Resolved {continuation.owner}/{continuation.name}: {counts.total} issues, "
            f"{counts.open} open, {counts.long_open} long open"
        )
        return FactorOutcome(factor=continuation.factor, values=issue_factors(counts), budget=budget)
