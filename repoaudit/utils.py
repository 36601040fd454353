import base64
import binascii
from typing import Optional, Tuple
from urllib.parse import urlparse

GITHUB_HOSTS = ("github.com", "www.github.com")


def parse_github_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Split a GitHub repository URL into owner and repository name.

    Args:
        url: e.g. ``https://github.com/octocat/hello-world.git``.

    Returns:
        ``(owner, repo)``, or None when the URL is not a github.com repository URL.
    """
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return None

    if parsed.scheme not in ("http", "https") or (parsed.hostname or "").lower() not in GITHUB_HOSTS:
        return None

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        return None

    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo:
        return None
    return owner, repo


def decode_base64_text(data: str) -> str:
    """Decode base64 API content as UTF-8. Raises ValueError on malformed input."""
    try:
        raw = base64.b64decode(data, validate=False)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64 content: {e}") from e
    return raw.decode("utf-8")


def truncate(text: Optional[str], limit: int) -> Optional[str]:
    if text is None or len(text) <= limit:
        return text
    return text[:limit]
