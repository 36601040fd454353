"""
GitHub REST API client.
"""

from typing import Any, Dict, List, Optional

import httpx

from repoaudit.constants import GITHUB_API_BASE, REPO_HOST_MAX_ATTEMPTS
from repoaudit.controller import RequestController
from repoaudit.vault import ServiceClass


class GitHubAPIError(Exception):
    """A GitHub call finished with a non-success status."""

    def __init__(self, status_code: int, url: str, message: str = ""):
        self.status_code = status_code
        self.url = url
        super().__init__(f"GitHub API returned {status_code} for {url}" + (f": {message}" if message else ""))


class GitHubClient:
    """Thin async wrapper around the GitHub REST API.

    Every request goes through the ``RequestController`` so that tokens are
    attached and rotated per call.
    """

    def __init__(self, controller: RequestController, api_base: str = GITHUB_API_BASE):
        """
        Initialize GitHub client.

        Args:
            controller: Sends requests and rotates repository-host credentials.
            api_base: REST root, overridable for GitHub Enterprise.
        """
        self.controller = controller
        self.api_base = api_base.rstrip("/")
        self._headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        request = httpx.Request(
            "GET",
            f"{self.api_base}{path}",
            params=params,
            headers=self._headers,
        )
        response = await self.controller.execute(request, ServiceClass.REPO_HOST, REPO_HOST_MAX_ATTEMPTS)

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            message = payload.get("message", "") if isinstance(payload, dict) else ""
            raise GitHubAPIError(response.status_code, str(request.url), message)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        """Get repository details."""
        return await self._get(f"/repos/{owner}/{repo}")

    async def list_commits(self, owner: str, repo: str, per_page: int = 30) -> List[Dict[str, Any]]:
        """List the most recent commits on the default branch."""
        return await self._get(f"/repos/{owner}/{repo}/commits", {"per_page": per_page}) or []

    async def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        """Get a single commit with stats and file patches."""
        return await self._get(f"/repos/{owner}/{repo}/commits/{sha}")

    async def list_pulls(self, owner: str, repo: str, per_page: int = 10) -> List[Dict[str, Any]]:
        """List pull requests in any state, newest first."""
        return await self._get(
            f"/repos/{owner}/{repo}/pulls",
            {"state": "all", "per_page": per_page},
        ) or []

    async def list_branches(self, owner: str, repo: str, per_page: int = 50) -> List[Dict[str, Any]]:
        return await self._get(f"/repos/{owner}/{repo}/branches", {"per_page": per_page}) or []

    async def list_contributors(self, owner: str, repo: str, per_page: int = 50) -> List[Dict[str, Any]]:
        # 204 for repositories without history
        return await self._get(f"/repos/{owner}/{repo}/contributors", {"per_page": per_page}) or []

    async def get_tree(self, owner: str, repo: str, ref: str) -> Dict[str, Any]:
        """
        Get the full recursive tree for a ref.

        Args:
            owner: Repository owner.
            repo: Repository name.
            ref: Branch name or commit SHA.

        Returns:
            Tree payload with a ``tree`` list of entries and a ``truncated`` flag.
        """
        return await self._get(f"/repos/{owner}/{repo}/git/trees/{ref}", {"recursive": 1}) or {}

    async def get_readme(self, owner: str, repo: str) -> Dict[str, Any]:
        return await self._get(f"/repos/{owner}/{repo}/readme")

    async def get_languages(self, owner: str, repo: str) -> Dict[str, int]:
        return await self._get(f"/repos/{owner}/{repo}/languages") or {}

    async def get_blob(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        """Get a blob by SHA. Content is base64 encoded."""
        return await self._get(f"/repos/{owner}/{repo}/git/blobs/{sha}")
