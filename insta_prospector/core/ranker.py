"""Oracle-assisted selection of the best candidates for a search request."""

from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional

from insta_prospector.core.config import ConfigurationError
from insta_prospector.models import Candidate, SearchRequest
from insta_prospector.vendors.openai_client import OracleClient

logger = logging.getLogger(__name__)

RANKING_TEMPERATURE = 0.2

SYSTEM_PROMPT = """
Eres un experto en prospección fitness.
Selecciona perfiles REALES de Instagram.
Devuelve SOLO JSON: {{ "selected": [{{"handle":"..."}}] }}
No inventes handles. Máximo {count}.
""".strip()


class SelectionParseError(ValueError):
    """Oracle selection could not be used; `kind` is "empty" or "malformed"."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


def parse_selection(content: Optional[str]) -> List[str]:
    """Validate `{"selected": [{"handle": str}, ...]}` and return lower-cased handles.

    A well-formed response with an empty `selected` list is valid and
    returns an empty list.
    """
    if content is None or not content.strip():
        raise SelectionParseError("empty", "oracle returned an empty response")

    try:
        payload = json.loads(content)
    except ValueError as exc:
        raise SelectionParseError("malformed", f"invalid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise SelectionParseError("malformed", "top-level JSON value is not an object")

    selected = payload.get("selected")
    if not isinstance(selected, list):
        raise SelectionParseError("malformed", "'selected' is missing or not a list")

    handles: List[str] = []
    for entry in selected:
        handle = entry.get("handle") if isinstance(entry, dict) else None
        if not isinstance(handle, str):
            raise SelectionParseError("malformed", f"selection entry without a string handle: {entry!r}")
        handles.append(handle.strip().lstrip("@").lower())
    return handles


def build_ranking_messages(request: SearchRequest, candidates: List[Candidate]) -> List[Dict[str, str]]:
    user_payload = {
        "location": request.location,
        "keywords": request.keywords,
        "profileType": request.profile_type.value,
        "topK": request.count,
        "candidates": [
            {
                "handle": candidate.handle,
                "title": candidate.title,
                "snippet": candidate.snippet,
                "sourceQuery": candidate.source_query,
            }
            for candidate in candidates
        ],
    }
    return [
        {"role": "system", "content": SYSTEM_PROMPT.format(count=request.count)},
        {"role": "user", "content": json.dumps(user_payload, ensure_ascii=False)},
    ]


class CandidateRanker:
    def __init__(self, oracle: OracleClient, model: Optional[str] = None) -> None:
        self.oracle = oracle
        self.model = model

    def rank(self, request: SearchRequest, candidates: List[Candidate]) -> List[Candidate]:
        if not candidates:
            return []

        fallback = candidates[: request.count]
        try:
            content = self.oracle.complete(
                build_ranking_messages(request, candidates),
                model=self.model,
                temperature=RANKING_TEMPERATURE,
                json_mode=True,
            )
        except ConfigurationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Ranking oracle failed, keeping first %d candidates: %s", len(fallback), exc)
            return fallback

        try:
            handles = parse_selection(content)
        except SelectionParseError as exc:
            logger.warning("Ranking response unusable (%s), keeping first %d candidates: %s", exc.kind, len(fallback), exc)
            return fallback

        by_handle = {candidate.handle.lower(): candidate for candidate in candidates}
        picked: List[Candidate] = []
        seen = set()
        for handle in handles:
            candidate = by_handle.get(handle)
            if candidate is None:
                logger.debug("Oracle selected unknown handle @%s; ignoring", handle)
                continue
            if handle in seen:
                continue
            seen.add(handle)
            picked.append(candidate)

        if not picked:
            logger.warning("Ranking oracle selected none of the %d candidates", len(candidates))
        return picked[: request.count]
