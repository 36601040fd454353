"""
Multi-key credential vault with rate-limit aware lookup.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional

from pydantic import BaseModel, SecretStr

from repoaudit.constants import RATE_LIMIT_COOLDOWN_SECONDS


class ServiceClass(str, Enum):
    REPO_HOST = "repo-host"
    LLM_PROVIDER = "llm-provider"


_LABELS = {
    ServiceClass.REPO_HOST: "GitHub",
    ServiceClass.LLM_PROVIDER: "Gemini",
}


class Credential(BaseModel):
    id: str
    display_name: str
    service_class: ServiceClass
    secret: SecretStr
    rate_limited_until: Optional[datetime] = None

    def is_usable(self, now: datetime) -> bool:
        return self.rate_limited_until is None or self.rate_limited_until <= now


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialVault:
    """
    Holds every credential known to the process, grouped by service class.

    There is no locking: callers look a credential up, make their request and
    only then report a rate limit back. Marking is idempotent, so concurrent
    in-flight requests reading the same list is harmless.
    """

    COOLDOWN = timedelta(seconds=RATE_LIMIT_COOLDOWN_SECONDS)

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        """
        Initialize an empty vault.

        Args:
            clock: Returns the current timezone-aware time. Injected in tests.
        """
        self._clock = clock
        self._credentials: List[Credential] = []

    def add(self, name: str, service_class: ServiceClass, secret: str) -> Credential:
        """
        Append a credential.

        Args:
            name: Human readable label.
            service_class: Which remote service the secret authenticates against.
            secret: The token or API key itself.

        Returns:
            The stored credential.
        """
        credential = Credential(
            id=uuid.uuid4().hex,
            display_name=name,
            service_class=ServiceClass(service_class),
            secret=SecretStr(secret),
        )
        self._credentials.append(credential)
        return credential

    def remove(self, credential_id: str) -> bool:
        """Delete a credential by id. Returns False when the id is unknown."""
        remaining = [c for c in self._credentials if c.id != credential_id]
        removed = len(remaining) != len(self._credentials)
        self._credentials = remaining
        return removed

    def load(self, service_class: ServiceClass, secrets: Iterable[str]) -> List[Credential]:
        """
        Register startup-supplied secrets, skipping any already present.

        Args:
            service_class: Service class for every secret in ``secrets``.
            secrets: Secret values, already split and trimmed.

        Returns:
            The credentials that were newly added.
        """
        label = _LABELS[service_class]
        added = []
        for index, secret in enumerate(secrets):
            if any(c.secret.get_secret_value() == secret for c in self._credentials):
                continue
            credential = Credential(
                id=f"env-{service_class.value}-{uuid.uuid4().hex}",
                display_name=f"Environment {label} Key {index + 1}",
                service_class=service_class,
                secret=SecretStr(secret),
            )
            self._credentials.append(credential)
            added.append(credential)
        return added

    def list(self, service_class: Optional[ServiceClass] = None) -> List[Credential]:
        if service_class is None:
            return list(self._credentials)
        return [c for c in self._credentials if c.service_class == service_class]

    def has_any(self, service_class: ServiceClass) -> bool:
        return any(c.service_class == service_class for c in self._credentials)

    def get_usable(self, service_class: ServiceClass) -> Optional[Credential]:
        """Return the first credential of the class that is not currently rate-limited."""
        now = self._clock()
        for credential in self._credentials:
            if credential.service_class == service_class and credential.is_usable(now):
                return credential
        return None

    def is_rate_limited(self, credential: Credential) -> bool:
        return not credential.is_usable(self._clock())

    def mark_rate_limited(self, credential: Credential) -> None:
        """Exclude a credential from selection for the cooldown window."""
        credential.rate_limited_until = self._clock() + self.COOLDOWN
        logging.warning(f"Credential {credential.display_name} marked as rate limited.")
