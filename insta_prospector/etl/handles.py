"""Handle extraction from result URLs and first-seen candidate deduplication."""

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import urlparse

from insta_prospector.models import Candidate

logger = logging.getLogger(__name__)

PLATFORM_DOMAIN = "instagram.com"
BLOCKED_PATHS = frozenset(
    {
        "p",
        "post",
        "reel",
        "reels",
        "tv",
        "explore",
        "stories",
        "accounts",
        "developer",
        "about",
        "directory",
        "tags",
    }
)
HANDLE_REGEX = re.compile(r"^[a-z0-9._]{1,30}$")


def _is_platform_host(hostname: Optional[str]) -> bool:
    if not hostname:
        return False
    host = hostname.lower()
    return host == PLATFORM_DOMAIN or host.endswith(f".{PLATFORM_DOMAIN}")


def extract_handle(url: str) -> Optional[str]:
    """Return the lower-cased Instagram handle a profile URL points to, or None."""
    if not isinstance(url, str) or not url:
        return None
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except (TypeError, ValueError, AttributeError):
        return None

    if not _is_platform_host(hostname):
        return None

    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        return None

    handle = segments[0].lower()
    if handle.startswith("@"):
        handle = handle[1:]
    if handle in BLOCKED_PATHS:
        return None
    if not HANDLE_REGEX.match(handle):
        return None
    return handle


class CandidateRegistry:
    """Insertion-ordered handle -> Candidate map where the first sighting wins."""

    def __init__(self) -> None:
        self._by_handle: Dict[str, Candidate] = {}

    def __len__(self) -> int:
        return len(self._by_handle)

    def __contains__(self, handle: object) -> bool:
        return handle in self._by_handle

    def observe(self, handle: str, title: str, snippet: str, source_query: str) -> None:
        if handle in self._by_handle:
            logger.debug("Ignoring repeated sighting of @%s", handle)
            return
        self._by_handle[handle] = Candidate(
            handle=handle,
            title=title or handle,
            snippet=snippet or "",
            source_query=source_query,
            score=1.0,
        )

    def all(self) -> List[Candidate]:
        return list(self._by_handle.values())
