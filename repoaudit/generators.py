import logging
from contextlib import aclosing
from typing import AsyncGenerator, Optional, Protocol

import httpx
import ollama
from google import genai
from google.genai import types
from google.genai.errors import APIError

from repoaudit import constants
from repoaudit.controller import CredentialsExhaustedError, RequestController
from repoaudit.models import EvidenceBundle, StreamEvent, StreamReset, TerminalError, TextDelta, UsageDelta
from repoaudit.prompts import assemble
from repoaudit.vault import Credential, ServiceClass

NO_CREDENTIAL_MESSAGE = "No Gemini API key configured. Set GEMINI_API_KEY or add a key via /credentials."
EXHAUSTED_MESSAGE = "Rate limit exceeded on all available keys. Please wait a minute or add another key."


class ReviewProvider(Protocol):
    requires_credential: bool

    def stream(self, prompt: str, credential: Optional[Credential]) -> AsyncGenerator[StreamEvent, None]:
        ...

    def describe_error(self, error: Exception) -> str:
        ...


class GeminiProvider:
    """Google Gemini streaming backend. Keyed, rotated through the vault."""

    requires_credential = True

    def __init__(self, model: str = constants.GEMINI_MODEL):
        self.model = model

    async def stream(self, prompt: str, credential: Optional[Credential]) -> AsyncGenerator[StreamEvent, None]:
        gclient = genai.Client(api_key=credential.secret.get_secret_value())
        response = await gclient.aio.models.generate_content_stream(
            model=self.model,
            contents=[prompt],
            config=types.GenerateContentConfig(
                thinking_config=types.ThinkingConfig(thinking_budget=0),
            ),
        )
        async for chunk in response:
            if chunk.text:
                yield TextDelta(content=chunk.text)
            usage = chunk.usage_metadata
            if usage:
                yield UsageDelta(
                    input_tokens=usage.prompt_token_count or 0,
                    output_tokens=usage.candidates_token_count or 0,
                    total_tokens=usage.total_token_count or 0,
                )

    def describe_error(self, error: Exception) -> str:
        if isinstance(error, APIError):
            return (
                "Gemini API Error: The service returned an error. "
                f"Check your API key and quota status. Details: {error}"
            )
        return f"An unexpected error occurred: {error}"


class OllamaProvider:
    """Local Ollama daemon backend. Unauthenticated, never rotated."""

    requires_credential = False

    def __init__(self, url: str = constants.OLLAMA_URL, model: str = constants.OLLAMA_MODEL):
        self.url = url
        self.model = model

    async def stream(self, prompt: str, credential: Optional[Credential] = None) -> AsyncGenerator[StreamEvent, None]:
        client = ollama.AsyncClient(host=self.url)
        response = await client.generate(model=self.model, prompt=prompt, stream=True)
        async for chunk in response:
            text = chunk.get("response")
            if text:
                yield TextDelta(content=text)
            # Counters only arrive on the final chunk
            if chunk.get("done"):
                prompt_tokens = chunk.get("prompt_eval_count") or 0
                output_tokens = chunk.get("eval_count") or 0
                yield UsageDelta(
                    input_tokens=prompt_tokens,
                    output_tokens=output_tokens,
                    total_tokens=prompt_tokens + output_tokens,
                )

    def describe_error(self, error: Exception) -> str:
        if isinstance(error, (ConnectionError, httpx.ConnectError)):
            return (
                f"Could not connect to Ollama at {self.url}. Make sure the daemon is running "
                f"(`ollama serve`) and the model is available (`ollama pull {self.model}`)."
            )
        if isinstance(error, ollama.ResponseError):
            return f"Ollama error for model {self.model}: {error.error}"
        return f"An unexpected error occurred: {error}"


class ReviewGenerator:
    """Turns an evidence bundle into a stream of review events."""

    def __init__(self, provider: ReviewProvider, controller: RequestController):
        """
        Args:
            provider: LLM backend producing the token stream.
            controller: Rotates LLM credentials on rate limits.
        """
        self.provider = provider
        self.controller = controller

    async def generate(self, bundle: EvidenceBundle) -> AsyncGenerator[StreamEvent, None]:
        """
        Stream the review for a bundle.

        Events are yielded as they arrive. Every unrecoverable condition ends
        the stream with exactly one ``TerminalError``; nothing is raised.
        """
        vault = self.controller.vault
        if self.provider.requires_credential and vault.get_usable(ServiceClass.LLM_PROVIDER) is None:
            message = EXHAUSTED_MESSAGE if vault.has_any(ServiceClass.LLM_PROVIDER) else NO_CREDENTIAL_MESSAGE
            yield TerminalError(message=message)
            return

        prompt = assemble(bundle)
        events = self.controller.stream(
            lambda credential: self.provider.stream(prompt, credential),
            ServiceClass.LLM_PROVIDER,
            max_attempts=constants.LLM_PROVIDER_MAX_ATTEMPTS,
            credential_required=self.provider.requires_credential,
            reset=StreamReset,
        )
        try:
            async with aclosing(events):
                async for event in events:
                    yield event
        except CredentialsExhaustedError as e:
            logging.error(f"Review stream stopped: {e}")
            yield TerminalError(message=EXHAUSTED_MESSAGE)
        except Exception as e:
            logging.error(f"Review stream failed: {e}")
            yield TerminalError(message=self.provider.describe_error(e))
