"""Core data models shared by the Instagram prospecting pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, List, Optional

MIN_COUNT = 1
MAX_COUNT = 100
DEFAULT_COUNT = 20


class ProfileType(str, enum.Enum):
    PT = "PT"
    CENTER = "Center"

    @property
    def business_type(self) -> str:
        return "Personal Trainer" if self is ProfileType.PT else "Fitness Center"


class LeadType(str, enum.Enum):
    INDIVIDUAL = "individual"
    CENTER = "center"


class CopySource(str, enum.Enum):
    ORACLE = "oracle"
    FALLBACK = "fallback"


def clamp_count(raw: Any, default: int = DEFAULT_COUNT) -> int:
    """Coerce a user supplied count into the accepted range."""
    if raw is None:
        return default
    try:
        value = int(float(raw))
    except OverflowError as exc:
        raise ValueError(f"count must be a finite number, got {raw!r}") from exc
    return min(max(value, MIN_COUNT), MAX_COUNT)


@dataclass(frozen=True, slots=True)
class SearchRequest:
    location: str
    keywords: str
    profile_type: ProfileType
    count: int = DEFAULT_COUNT

    def __post_init__(self) -> None:
        if not MIN_COUNT <= self.count <= MAX_COUNT:
            raise ValueError(f"count must be between {MIN_COUNT} and {MAX_COUNT}, got {self.count}")


@dataclass(frozen=True, slots=True)
class SearchResult:
    """One organic result returned by the search provider."""

    title: str
    snippet: str
    url: str


@dataclass(frozen=True, slots=True)
class Candidate:
    """Instagram profile discovered from search results, keyed by handle."""

    handle: str
    title: str
    snippet: str
    source_query: str
    score: float = 1.0


@dataclass(slots=True)
class SearchOutput:
    queries: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    ranked: List[Candidate] = field(default_factory=list)
    selected: List[Candidate] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CopyResult:
    handle: str
    copy: str
    source: CopySource
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class RateWindow:
    actor_id: str
    count: int
    window_start: float


@dataclass(frozen=True, slots=True)
class Signals:
    """Heuristic signals derived from a profile bio."""

    lead_type: LeadType
    is_online: bool
    is_local_region: bool
    service_hook: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ParsedLocation:
    country: Optional[str] = None
    city: Optional[str] = None
