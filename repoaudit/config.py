from typing import Annotated, List, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from repoaudit import constants


class Settings(BaseSettings):
    # Comma-separated in the environment, e.g. GITHUB_TOKEN=ghp_a,ghp_b
    GITHUB_TOKEN: Annotated[List[str], NoDecode] = []
    GEMINI_API_KEY: Annotated[List[str], NoDecode] = []

    LLM_PROVIDER: Literal["gemini", "ollama"] = "gemini"
    GEMINI_MODEL: str = constants.GEMINI_MODEL
    OLLAMA_URL: str = constants.OLLAMA_URL
    OLLAMA_MODEL: str = constants.OLLAMA_MODEL

    GITHUB_API_BASE: str = constants.GITHUB_API_BASE
    HTTP_TIMEOUT: float = 30.0
    RATE_LIMIT: str = "10/minute"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("GITHUB_TOKEN", "GEMINI_API_KEY", mode="before")
    @classmethod
    def split_secrets(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value
