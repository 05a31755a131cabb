"""Deterministic expansion of a search request into search-engine queries."""

import re
from typing import Dict, List, Tuple

from insta_prospector.models import ProfileType, SearchRequest

MAX_QUERIES = 8
PLATFORM_SITE = "site:instagram.com"

SYNONYMS: Dict[ProfileType, Tuple[str, ...]] = {
    ProfileType.PT: ("entrenador personal", "personal trainer", "coach fitness"),
    ProfileType.CENTER: ("studio fitness", "centro de entrenamiento", "gimnasio boutique"),
}

# Content pages (posts, reels, ...) never point at a profile.
EXCLUDED_PATHS = ("p", "reel", "reels", "tv", "explore", "stories", "tags")
EXCLUSION_FILTERS = " ".join(f"-inurl:/{path}/" for path in EXCLUDED_PATHS)

_WHITESPACE = re.compile(r"\s+")


def normalize_query(query: str) -> str:
    return _WHITESPACE.sub(" ", query).strip()


def _templates(location_part: str, keywords: str, synonym: str) -> List[str]:
    return [
        f"{PLATFORM_SITE}{location_part} {keywords} {synonym}",
        f'{PLATFORM_SITE}{location_part} "{keywords}" "{synonym}"',
        f"{keywords}{location_part} {synonym} instagram",
    ]


def build_queries(request: SearchRequest) -> List[str]:
    """Return at most `MAX_QUERIES` unique queries in synonym x template order."""
    location = (request.location or "").strip()
    keywords = (request.keywords or "").strip()
    location_part = f" {location}" if location else ""

    queries: List[str] = []
    seen = set()
    for synonym in SYNONYMS[request.profile_type]:
        for template in _templates(location_part, keywords, synonym):
            query = normalize_query(f"{template} {EXCLUSION_FILTERS}")
            if not query or query in seen:
                continue
            seen.add(query)
            queries.append(query)

    return queries[:MAX_QUERIES]
