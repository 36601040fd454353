"""
Evidence collection for a single repository review.
"""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

import httpx

from repoaudit import constants
from repoaudit.controller import RATE_LIMIT_STATUSES, CredentialsExhaustedError
from repoaudit.models import (
    Branch,
    CommitRecord,
    Contributor,
    EvidenceBundle,
    PullRequestRecord,
    RepositoryFile,
    RepositoryInfo,
)
from repoaudit.utils import decode_base64_text, truncate

from .client import GitHubAPIError, GitHubClient
from .ranking import rank

T = TypeVar("T")

# Failures that only cost one piece of evidence.
ENRICHMENT_ERRORS = (GitHubAPIError, CredentialsExhaustedError, httpx.HTTPError, ValueError, KeyError, TypeError)


class CollectionError(Exception):
    """The repository could not be collected at all."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RepositoryNotFoundError(CollectionError):
    pass


class RateLimitedError(CollectionError):
    pass


async def _skipped(value: T) -> T:
    return value


class EvidenceCollector:
    """Builds an ``EvidenceBundle`` from the GitHub API."""

    def __init__(self, client: GitHubClient):
        self.client = client

    async def collect(self, owner: str, repo: str) -> EvidenceBundle:
        """
        Fetch everything a review needs, best effort.

        Args:
            owner: Repository owner.
            repo: Repository name.

        Returns:
            The bundle. Sections whose fetch failed are left empty.

        Raises:
            RepositoryNotFoundError: The repository does not exist or is private.
            RateLimitedError: Metadata could not be fetched because of rate limits.
            CollectionError: Any other failure of the metadata call.
        """
        repository = await self._fetch_repository(owner, repo)
        ref = repository.default_branch

        # Empty repositories have no default branch and nothing to walk.
        raw_commits, raw_pulls, raw_branches, raw_contributors, raw_tree, readme, languages = await asyncio.gather(
            self._optional("commits", self.client.list_commits(owner, repo, constants.COMMIT_LIMIT), [])
            if ref else _skipped([]),
            self._optional("pull requests", self.client.list_pulls(owner, repo, constants.PULL_REQUEST_LIMIT), []),
            self._optional("branches", self.client.list_branches(owner, repo, constants.BRANCH_LIMIT), []),
            self._optional("contributors", self.client.list_contributors(owner, repo, constants.CONTRIBUTOR_LIMIT), [])
            if ref else _skipped([]),
            self._optional("tree", self.client.get_tree(owner, repo, ref), {})
            if ref else _skipped({}),
            self._fetch_readme(owner, repo),
            self._optional("languages", self.client.get_languages(owner, repo), {}),
        )

        files = self._tree_files(raw_tree)
        commits, ranked_files = await asyncio.gather(
            self._enrich_commits(owner, repo, [CommitRecord.from_api(c) for c in raw_commits[: constants.COMMIT_LIMIT]]),
            self._fetch_ranked_files(owner, repo, files),
        )

        return EvidenceBundle(
            repository=repository,
            readme=readme,
            files=files,
            ranked_files=ranked_files,
            commits=commits,
            pull_requests=[PullRequestRecord.from_api(p) for p in raw_pulls[: constants.PULL_REQUEST_LIMIT]],
            branches=[
                Branch(name=b["name"], sha=(b.get("commit") or {}).get("sha"))
                for b in raw_branches[: constants.BRANCH_LIMIT]
            ],
            contributors=[
                Contributor(login=c["login"], contributions=c.get("contributions", 0))
                for c in raw_contributors[: constants.CONTRIBUTOR_LIMIT]
                if c.get("login")
            ],
            languages=languages,
        )

    async def _fetch_repository(self, owner: str, repo: str) -> RepositoryInfo:
        slug = f"{owner}/{repo}"
        try:
            raw = await self.client.get_repo(owner, repo)
        except CredentialsExhaustedError as e:
            raise RateLimitedError(f"GitHub rate limit exceeded while fetching {slug}", 429) from e
        except GitHubAPIError as e:
            if e.status_code == 404:
                raise RepositoryNotFoundError(f"Repository {slug} not found or is private", 404) from e
            if e.status_code in RATE_LIMIT_STATUSES:
                raise RateLimitedError(
                    f"GitHub rate limit exceeded while fetching {slug}. Add a GitHub token to raise the limit.",
                    e.status_code,
                ) from e
            raise CollectionError(f"Failed to fetch {slug}: {e}", e.status_code) from e
        except httpx.HTTPError as e:
            raise CollectionError(f"Failed to reach GitHub for {slug}: {e}") from e
        return RepositoryInfo.model_validate(raw)

    async def _optional(self, label: str, awaitable: Awaitable[Optional[T]], default: T) -> T:
        try:
            result = await awaitable
        except ENRICHMENT_ERRORS as e:
            logging.error(f"Failed to fetch {label}: {e}")
            return default
        return default if result is None else result

    async def _fetch_readme(self, owner: str, repo: str) -> Optional[str]:
        payload = await self._optional("README", self.client.get_readme(owner, repo), {})
        if not payload.get("content"):
            return None
        try:
            return decode_base64_text(payload["content"])
        except ValueError as e:
            logging.error(f"Failed to decode README for {owner}/{repo}: {e}")
            return None

    def _tree_files(self, raw_tree: Dict[str, Any]) -> List[RepositoryFile]:
        blobs = [entry for entry in raw_tree.get("tree") or [] if entry.get("type") == "blob"]
        return [RepositoryFile.from_tree_entry(entry) for entry in blobs[: constants.TREE_ENTRY_LIMIT]]

    async def _enrich_commits(self, owner: str, repo: str, commits: List[CommitRecord]) -> List[CommitRecord]:
        """Attach stats and patches to the most recent commits. Older ones keep base metadata."""
        head = commits[: constants.ENRICHED_COMMIT_LIMIT]
        details = await asyncio.gather(
            *(self._optional(f"commit {c.sha}", self.client.get_commit(owner, repo, c.sha), None) for c in head)
        )
        enriched = [
            commit.with_detail(detail, constants.PATCH_EXCERPT_CHAR_LIMIT) if detail else commit
            for commit, detail in zip(head, details)
        ]
        return enriched + commits[constants.ENRICHED_COMMIT_LIMIT:]

    async def _fetch_ranked_files(self, owner: str, repo: str, files: List[RepositoryFile]) -> List[RepositoryFile]:
        selected = rank(files, constants.RANKED_FILE_LIMIT)
        contents = await asyncio.gather(*(self._fetch_file_content(owner, repo, f) for f in selected))
        return [f.model_copy(update={"content_excerpt": text}) for f, text in zip(selected, contents) if text is not None]

    async def _fetch_file_content(self, owner: str, repo: str, file: RepositoryFile) -> Optional[str]:
        try:
            blob = await self.client.get_blob(owner, repo, file.blob_id)
            text = decode_base64_text(blob["content"])
        except ENRICHMENT_ERRORS as e:
            logging.error(f"Failed to fetch content for {file.path}: {e}")
            return None
        return truncate(text, constants.FILE_CONTENT_CHAR_LIMIT)
