"""External data sources."""

from npmquality.sources.base import BaseSource, PackageNotFoundError, extract_repo_info
from npmquality.sources.github import GitHubIssuesSource, IssuesPage
from npmquality.sources.npm import NpmSource

__all__ = [
    "BaseSource",
    "GitHubIssuesSource",
    "IssuesPage",
    "NpmSource",
    "PackageNotFoundError",
    "extract_repo_info",
]
