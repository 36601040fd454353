"""
GitHub Integration Module for RepoAudit.

Provides the REST client, evidence collection and file significance
ranking used to build a review prompt for a repository.
"""

from .client import GitHubAPIError, GitHubClient
from .collector import (
    CollectionError,
    EvidenceCollector,
    RateLimitedError,
    RepositoryNotFoundError,
)
from .ranking import rank, score_file

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "CollectionError",
    "EvidenceCollector",
    "RateLimitedError",
    "RepositoryNotFoundError",
    "rank",
    "score_file",
]
