"""Hand-written fakes for the npm and GitHub sources, shared by the tests."""

from datetime import datetime, timedelta, timezone

from npmquality.models.schemas import RateBudget
from npmquality.sources.github import IssuesPage

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def issue(state: str, days_old: int = 10) -> dict:
    created = NOW - timedelta(days=days_old)
    return {"state": state, "created_at": created.isoformat().replace("+00:00", "Z")}


class FakeNpmSource:
    def __init__(self, downloads=None, metadata=None, error=None) -> None:
        self.downloads = downloads
        self.metadata = metadata
        self.error = error
        self.calls = []

    async def get_downloads(self, name, start, end):
        self.calls.append(("downloads", name, start, end))
        if self.error:
            raise self.error
        return self.downloads

    async def get_registry_metadata(self, name):
        self.calls.append(("metadata", name))
        if self.error:
            raise self.error
        return self.metadata


class FakeGitHubSource:
    """Serves issue pages from a dict {page: IssuesPage | Exception | None}."""

    def __init__(self, pages=None) -> None:
        self.pages = pages or {}
        self.calls = []

    async def fetch_issues_page(self, owner, name, page, since):
        self.calls.append((owner, name, page))
        result = self.pages.get(page)
        if isinstance(result, Exception):
            raise result
        return result


def page(issues, last_page=1, remaining=None, reset=None) -> IssuesPage:
    return IssuesPage(
        issues=issues,
        last_page=last_page,
        budget=RateBudget(remaining_calls=remaining, reset_epoch=reset),
    )
