"""Quality factors measured for each package."""

from npmquality.factors.base import BaseFactor
from npmquality.factors.downloads import DownloadsFactor
from npmquality.factors.issues import ContinuationResolver, IssuesFactor
from npmquality.factors.versions import VersionsFactor

__all__ = [
    "BaseFactor",
    "ContinuationResolver",
    "DownloadsFactor",
    "IssuesFactor",
    "VersionsFactor",
]
