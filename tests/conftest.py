import base64

import httpx
import pytest
from fastapi.testclient import TestClient

from repoaudit.api import app, limiter
from repoaudit.dependencies import get_collector, get_review_generator, get_vault
from repoaudit.controller import RequestController
from repoaudit.generators import ReviewGenerator
from repoaudit.github import EvidenceCollector, GitHubClient
from repoaudit.models import TextDelta, UsageDelta
from repoaudit.vault import CredentialVault

# Disable rate limiting for all tests
limiter.enabled = False

OWNER = "octo"
REPO = "demo"
PREFIX = f"/repos/{OWNER}/{REPO}"


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class FakeGitHub:
    """MockTransport handler serving canned GitHub responses by URL path."""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, path, payload=None, status=200):
        self.routes[path] = (status, payload)

    def add_sequence(self, path, responses):
        """Serve ``(status, payload)`` pairs in order, repeating the last one."""
        self.routes[path] = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(route, list):
            status, payload = route.pop(0) if len(route) > 1 else route[0]
        else:
            status, payload = route
        if payload is None:
            return httpx.Response(status)
        return httpx.Response(status, json=payload)

    @property
    def paths(self):
        return [r.url.path for r in self.requests]

    def add_repository(self, default_branch="main"):
        self.add(PREFIX, {
            "name": REPO,
            "full_name": f"{OWNER}/{REPO}",
            "description": "Demo service",
            "html_url": f"https://github.com/{OWNER}/{REPO}",
            "default_branch": default_branch,
            "stargazers_count": 12,
            "forks_count": 3,
            "open_issues_count": 1,
        })
        self.add(f"{PREFIX}/commits", [
            {
                "sha": "abc123",
                "html_url": "https://github.com/octo/demo/commit/abc123",
                "commit": {"message": "Add API router", "author": {"name": "Ada", "date": "2024-05-01T10:00:00Z"}},
            },
        ])
        self.add(f"{PREFIX}/commits/abc123", {
            "sha": "abc123",
            "stats": {"additions": 10, "deletions": 2, "total": 12},
            "files": [{"filename": "src/api/router.py", "status": "added", "patch": "@@ -0,0 +1 @@\n+router = 1"}],
        })
        self.add(f"{PREFIX}/pulls", [
            {"number": 7, "title": "Router", "state": "closed", "user": {"login": "ada"}, "body": "Adds routing."},
        ])
        self.add(f"{PREFIX}/branches", [{"name": "main", "commit": {"sha": "abc123"}}])
        self.add(f"{PREFIX}/contributors", [{"login": "ada", "contributions": 42}])
        self.add(f"{PREFIX}/git/trees/{default_branch}", {
            "truncated": False,
            "tree": [
                {"path": "src", "type": "tree", "sha": "t1"},
                {"path": "src/main.py", "type": "blob", "sha": "b1", "size": 120},
                {"path": "src/api/router.py", "type": "blob", "sha": "b2", "size": 300},
                {"path": "node_modules/lib/index.js", "type": "blob", "sha": "b3", "size": 50},
                {"path": "logo.png", "type": "blob", "sha": "b4", "size": 5000},
            ],
        })
        self.add(f"{PREFIX}/git/blobs/b1", {"sha": "b1", "encoding": "base64", "content": b64("print('main')")})
        self.add(f"{PREFIX}/git/blobs/b2", {"sha": "b2", "encoding": "base64", "content": b64("router = 1")})
        self.add(f"{PREFIX}/readme", {"encoding": "base64", "content": b64("# Demo\nA demo service.")})
        self.add(f"{PREFIX}/languages", {"Python": 4200})


class FakeProvider:
    """Review backend replaying fixed text chunks."""

    requires_credential = False

    def __init__(self, chunks, usage=None):
        self.chunks = chunks
        self.usage = usage

    async def stream(self, prompt, credential):
        for chunk in self.chunks:
            yield TextDelta(content=chunk)
        if self.usage:
            yield UsageDelta(**self.usage)

    def describe_error(self, error):
        return f"An unexpected error occurred: {error}"


@pytest.fixture
def vault():
    return CredentialVault()


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def fake_provider():
    return FakeProvider(["Intro "])


@pytest.fixture
def client(vault, fake_github, fake_provider):
    async def override_collector():
        async with httpx.AsyncClient(transport=httpx.MockTransport(fake_github)) as http_client:
            yield EvidenceCollector(GitHubClient(RequestController(vault, http_client)))

    app.dependency_overrides[get_vault] = lambda: vault
    app.dependency_overrides[get_collector] = override_collector
    app.dependency_overrides[get_review_generator] = lambda: ReviewGenerator(fake_provider, RequestController(vault))
    yield TestClient(app)
    app.dependency_overrides.clear()
