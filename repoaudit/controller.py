"""
Outbound request controller: credential rotation with bounded retry.
"""

import logging
from contextlib import aclosing
from typing import AsyncIterator, Callable, Optional, TypeVar

import httpx

from repoaudit.vault import Credential, CredentialVault, ServiceClass

T = TypeVar("T")

RATE_LIMIT_STATUSES = (403, 429)


class CredentialsExhaustedError(Exception):
    """No usable credential is left for a service class."""

    def __init__(self, service_class: ServiceClass, response: Optional[httpx.Response] = None):
        self.service_class = service_class
        self.response = response
        super().__init__(f"All {service_class.value} credentials are rate limited or exhausted")


def status_of(error: BaseException) -> Optional[int]:
    """Best-effort HTTP status of an SDK or transport exception."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    for attr in ("code", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    return None


def is_rate_limit_error(error: BaseException) -> bool:
    return status_of(error) in RATE_LIMIT_STATUSES


class RequestController:
    """Wraps calls to rate-limited services, rotating credentials on 403/429."""

    def __init__(self, vault: CredentialVault, http_client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            vault: Credential source shared by every caller in the process.
            http_client: Client used by ``execute``. Not needed for ``stream``.
        """
        self.vault = vault
        self.http_client = http_client

    def _acquire(
        self,
        service_class: ServiceClass,
        required: bool,
        last_response: Optional[httpx.Response] = None,
    ) -> Optional[Credential]:
        credential = self.vault.get_usable(service_class)
        if credential is None and (required or self.vault.has_any(service_class)):
            raise CredentialsExhaustedError(service_class, last_response)
        return credential

    async def execute(
        self,
        request: httpx.Request,
        service_class: ServiceClass,
        max_attempts: int = 5,
    ) -> httpx.Response:
        """
        Send a request, rotating to the next credential whenever it is rate limited.

        Requests go out anonymously when the vault holds no credential of the
        class at all; an anonymous 403/429 is returned as-is since there is
        nothing to rotate to.

        Args:
            request: The request to send. Its Authorization header is managed here.
            service_class: Which credentials to draw from.
            max_attempts: Attempt ceiling, including the first call.

        Returns:
            The first response that is not a rate limit.

        Raises:
            CredentialsExhaustedError: Credentials exist but none is usable, or
                the attempt ceiling was reached on rate-limit responses.
        """
        response = None
        for attempt in range(1, max_attempts + 1):
            credential = self._acquire(service_class, required=False, last_response=response)

            if credential is not None:
                request.headers["Authorization"] = f"Bearer {credential.secret.get_secret_value()}"
            else:
                request.headers.pop("Authorization", None)

            response = await self.http_client.send(request)

            if response.status_code not in RATE_LIMIT_STATUSES or credential is None:
                return response

            self.vault.mark_rate_limited(credential)
            await response.aclose()
            logging.info(
                f"Rate limit hit on {request.url.path}. "
                f"Rotating key and retrying (attempt {attempt}/{max_attempts})..."
            )

        raise CredentialsExhaustedError(service_class, response)

    async def stream(
        self,
        open_stream: Callable[[Optional[Credential]], AsyncIterator[T]],
        service_class: ServiceClass,
        max_attempts: int = 3,
        credential_required: bool = True,
        reset: Optional[Callable[[], T]] = None,
    ) -> AsyncIterator[T]:
        """
        Run a streaming call with the same rotation policy as ``execute``.

        A rate-limit error restarts the stream from scratch with the next
        credential; anything else propagates to the caller.

        Args:
            open_stream: Starts one attempt with the given credential.
            service_class: Which credentials to draw from.
            max_attempts: Attempt ceiling, including the first call.
            credential_required: When False the stream is opened with ``None``
                and never rotated (unauthenticated backends).
            reset: Builds the item yielded after a rate-limited attempt that
                had already yielded something, so the consumer can discard
                it before the retry or the exhaustion error. Without it,
                partial output is left in place.
        """
        for attempt in range(1, max_attempts + 1):
            credential = self._acquire(service_class, required=True) if credential_required else None
            yielded = False
            try:
                async with aclosing(open_stream(credential)) as items:
                    async for item in items:
                        yielded = True
                        yield item
                return
            except Exception as e:
                if credential is None or not is_rate_limit_error(e):
                    raise
                self.vault.mark_rate_limited(credential)
                logging.warning(
                    f"{service_class.value} rate limit (attempt {attempt}/{max_attempts}): {e}"
                )
            if yielded and reset is not None:
                yield reset()

        raise CredentialsExhaustedError(service_class)
