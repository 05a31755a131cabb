"""Instagram prospecting job: search, dedupe, rank, write copy and persist."""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from insta_prospector.core.config import ConfigurationError, Settings, get_settings, require_setting
from insta_prospector.core.db import PostgresRepository, ProspectRepository
from insta_prospector.core.enricher import ConcurrentEnricher, EnrichmentContext
from insta_prospector.core.ranker import CandidateRanker
from insta_prospector.core.rate_limit import RateLimiter, RateLimitExceeded
from insta_prospector.core.throttle import RandomDelay, ThrottledScheduler
from insta_prospector.etl.handles import CandidateRegistry, extract_handle
from insta_prospector.etl.location import compose_search_location, parse_location
from insta_prospector.etl.queries import build_queries
from insta_prospector.models import CopyResult, ProfileType, SearchOutput, SearchRequest, clamp_count
from insta_prospector.vendors.openai_client import OpenAIOracle
from insta_prospector.vendors.serper import ProviderError, SerperClient

logger = logging.getLogger(__name__)

EMPTY_CANDIDATES_MESSAGE = "0 candidatos. Revisa SERPER_API_KEY y/o cambia keywords/location."


class ProspectingPipeline:
    def __init__(
        self,
        *,
        search_client: SerperClient,
        ranker: CandidateRanker,
        enricher: ConcurrentEnricher,
        rate_limiter: RateLimiter,
        scheduler: Optional[ThrottledScheduler] = None,
        repository: Optional[ProspectRepository] = None,
        workspace_id: Optional[str] = None,
    ) -> None:
        self.search_client = search_client
        self.ranker = ranker
        self.enricher = enricher
        self.rate_limiter = rate_limiter
        self.scheduler = scheduler or ThrottledScheduler()
        self.repository = repository
        self.workspace_id = workspace_id

    def search(self, request: SearchRequest) -> SearchOutput:
        """Run the query fan-out and ranking; per-query provider errors land in `failures`."""
        queries = build_queries(request)
        registry = CandidateRegistry()
        failures: List[str] = []

        for query in self.scheduler.paced(queries):
            try:
                results = self.search_client.fetch(query)
            except ProviderError as exc:
                logger.warning("Search query failed: %s", exc)
                failures.append(f"{query}: {exc}")
                continue

            logger.info("Serper returned %d results for query=%s", len(results), query)
            for result in results:
                handle = extract_handle(result.url)
                if not handle:
                    logger.debug("Skipping URL without profile handle: %s", result.url[:180])
                    continue
                registry.observe(handle, result.title, result.snippet, query)

        ranked = registry.all()
        selected = self.ranker.rank(request, ranked)
        logger.info("Ranked %d candidates, selected %d", len(ranked), len(selected))

        if not ranked:
            failures.append(EMPTY_CANDIDATES_MESSAGE)

        return SearchOutput(queries=queries, failures=failures, ranked=ranked, selected=selected)

    def run(
        self,
        *,
        actor_id: str,
        keywords: str,
        profile_type: ProfileType,
        location: Optional[str] = None,
        city: Optional[str] = None,
        country: Optional[str] = None,
        count: int = 20,
        actor_contact: Optional[str] = None,
        check_rate_limit: bool = True,
    ) -> Dict[str, Any]:
        """Full run for one actor. Raises RateLimitExceeded before doing any work.

        Callers that already admitted the actor pass check_rate_limit=False so the
        request is counted once.
        """
        if check_rate_limit:
            self.rate_limiter.check(actor_id)

        parsed = parse_location(location, city, country)
        location_for_search = compose_search_location(parsed, location)
        if not location_for_search:
            raise ValueError("location is required (or provide country)")

        keywords = (keywords or "").strip()
        if not keywords:
            raise ValueError("keywords are required")

        actor = (actor_contact or "").strip() or actor_id
        request = SearchRequest(
            location=location_for_search,
            keywords=keywords,
            profile_type=profile_type,
            count=count,
        )

        output = self.search(request)
        copies = self.enricher.enrich(output.selected, EnrichmentContext(actor_contact=actor, profile_type=profile_type))

        run_id = None
        profile_ids: Dict[str, str] = {}
        lead_ids: Dict[str, str] = {}
        if self.repository is not None:
            run_id, profile_ids, lead_ids = self._persist(
                request=request,
                output=output,
                copies=copies,
                actor_id=actor_id,
                actor=actor,
                country=parsed.country,
                city=parsed.city,
            )

        leads = []
        for candidate, copy in zip(output.selected, copies):
            leads.append(
                {
                    "handle": candidate.handle,
                    "title": candidate.title,
                    "snippet": candidate.snippet,
                    "sourceQuery": candidate.source_query,
                    "score": candidate.score,
                    "copy": copy.copy,
                    "copySource": copy.source.value,
                    "copyError": copy.error,
                    "profileId": profile_ids.get(candidate.handle),
                    "leadId": lead_ids.get(candidate.handle),
                }
            )

        return {
            "runId": run_id,
            "actor": actor,
            "locationForSearch": location_for_search,
            "parsed": {"country": parsed.country, "city": parsed.city},
            "queryCount": len(output.queries),
            "queries": output.queries,
            "failures": output.failures,
            "leads": leads,
        }

    def _persist(
        self,
        *,
        request: SearchRequest,
        output: SearchOutput,
        copies: List[CopyResult],
        actor_id: str,
        actor: str,
        country: Optional[str],
        city: Optional[str],
    ):
        workspace_id = require_setting(self.workspace_id, "DEFAULT_WORKSPACE_ID")
        profile_type = request.profile_type
        query_label = f"{profile_type.value}: {request.keywords} @ {request.location}"

        run_id = self.repository.create_search_run(
            workspace_id,
            actor_id,
            query_label,
            {
                "actor": actor,
                "profileType": profile_type.value,
                "country": country,
                "city": city,
                "locationForSearch": request.location,
                "keywords": request.keywords,
                "queriesTried": len(output.queries),
                "failures": len(output.failures),
                "resultsCount": len(output.selected),
            },
        )
        if not output.selected:
            return run_id, {}, {}

        profile_rows = [
            {
                "instagram_handle": candidate.handle,
                "full_name": None,
                "business_type": profile_type.business_type,
                "city": city,
                "country": country,
                "source_payload": {
                    "source": "serper",
                    "actor": actor,
                    "query": candidate.source_query,
                    "title": candidate.title,
                    "snippet": candidate.snippet,
                    "score": candidate.score,
                    "search_run_id": run_id,
                },
            }
            for candidate in output.selected
        ]
        saved_profiles = self.repository.upsert_candidates(profile_rows)
        profile_ids = {row["handle"]: row["id"] for row in saved_profiles}

        discovered_at = datetime.now(timezone.utc)
        lead_rows = []
        lead_handles = []
        for candidate, copy in zip(output.selected, copies):
            profile_id = profile_ids.get(candidate.handle)
            if not profile_id:
                logger.warning("No profile id returned for @%s; skipping lead", candidate.handle)
                continue
            lead_handles.append(candidate.handle)
            lead_rows.append(
                {
                    "workspace_id": workspace_id,
                    "profile_id": profile_id,
                    "owner_id": actor_id,
                    "actor": actor,
                    "status": "new",
                    "source_query": candidate.source_query,
                    "confidence": min(100, max(0, round(candidate.score * 10))),
                    "generated_copy": copy.copy,
                    "copy_source": copy.source.value,
                    "discovered_at": discovered_at,
                }
            )

        saved_leads = self.repository.upsert_outreach(lead_rows) if lead_rows else []
        handle_by_profile = dict(zip((row["profile_id"] for row in lead_rows), lead_handles))
        lead_ids = {
            handle_by_profile[str(row["profile_id"])]: str(row["id"])
            for row in saved_leads
            if str(row.get("profile_id")) in handle_by_profile
        }
        logger.info("Persisted run=%s profiles=%d leads=%d", run_id, len(profile_ids), len(lead_ids))
        return run_id, profile_ids, lead_ids


def build_pipeline(
    settings: Optional[Settings] = None,
    *,
    rate_limiter: Optional[RateLimiter] = None,
    repository: Optional[ProspectRepository] = None,
) -> ProspectingPipeline:
    """Wire the pipeline from environment settings."""
    settings = settings or get_settings()
    oracle = OpenAIOracle(settings.openai_api_key, model=settings.openai_model)
    return ProspectingPipeline(
        search_client=SerperClient(settings.serper_api_key, gl=settings.serper_gl, hl=settings.serper_hl),
        ranker=CandidateRanker(oracle),
        enricher=ConcurrentEnricher(oracle, workers=settings.enrich_workers),
        rate_limiter=rate_limiter
        or RateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        ),
        scheduler=ThrottledScheduler(RandomDelay(settings.search_delay_min_ms, settings.search_delay_max_ms)),
        repository=repository,
        workspace_id=settings.workspace_id,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find Instagram fitness prospects and draft outreach copy")
    parser.add_argument("--keywords", required=True, help="Free-text keywords, e.g. 'fuerza polanco'")
    parser.add_argument("--location", help="Free-text location, e.g. 'CDMX, Mexico'")
    parser.add_argument("--city", help="Explicit city (used together with --country)")
    parser.add_argument("--country", help="Explicit country; wins over --location")
    parser.add_argument(
        "--profile-type",
        dest="profile_type",
        choices=[member.value for member in ProfileType],
        default=ProfileType.PT.value,
    )
    parser.add_argument("--count", type=int, default=20, help="Number of leads to select (1-100)")
    parser.add_argument("--actor", default="", help="Sender e-mail used to sign the copy")
    parser.add_argument("--actor-id", dest="actor_id", default="cli", help="Identifier used for rate limiting")
    parser.add_argument("--persist", action="store_true", help="Write the run to DATABASE_URL")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    repository = PostgresRepository() if args.persist else None
    pipeline = build_pipeline(repository=repository)
    try:
        result = pipeline.run(
            actor_id=args.actor_id,
            actor_contact=args.actor,
            keywords=args.keywords,
            profile_type=ProfileType(args.profile_type),
            location=args.location,
            city=args.city,
            country=args.country,
            count=clamp_count(args.count),
        )
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    except (ValueError, RateLimitExceeded) as exc:
        logger.error("%s", exc)
        raise SystemExit(1) from exc

    print(json.dumps(result, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
