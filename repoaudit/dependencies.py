from functools import lru_cache
from typing import AsyncGenerator

import httpx
from fastapi import Depends

import repoaudit.config as config
from repoaudit.controller import RequestController
from repoaudit.generators import GeminiProvider, OllamaProvider, ReviewGenerator
from repoaudit.github import EvidenceCollector, GitHubClient
from repoaudit.vault import CredentialVault, ServiceClass


@lru_cache
def get_settings() -> config.Settings:
    return config.Settings()


@lru_cache
def get_vault() -> CredentialVault:
    """The one credential vault of the process, seeded from the environment."""
    settings = get_settings()
    vault = CredentialVault()
    vault.load(ServiceClass.REPO_HOST, settings.GITHUB_TOKEN)
    vault.load(ServiceClass.LLM_PROVIDER, settings.GEMINI_API_KEY)
    return vault


async def get_collector(
    settings: config.Settings = Depends(get_settings),
    vault: CredentialVault = Depends(get_vault),
) -> AsyncGenerator[EvidenceCollector, None]:
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as http_client:
        client = GitHubClient(RequestController(vault, http_client), settings.GITHUB_API_BASE)
        yield EvidenceCollector(client)


def get_review_generator(
    settings: config.Settings = Depends(get_settings),
    vault: CredentialVault = Depends(get_vault),
) -> ReviewGenerator:
    if settings.LLM_PROVIDER == "ollama":
        provider = OllamaProvider(settings.OLLAMA_URL, settings.OLLAMA_MODEL)
    else:
        provider = GeminiProvider(settings.GEMINI_MODEL)
    return ReviewGenerator(provider, RequestController(vault))
