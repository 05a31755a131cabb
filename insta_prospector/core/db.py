"""Postgres-backed repository for search runs, profiles and outreach leads."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Protocol

from psycopg2 import extras, pool

from insta_prospector.core.config import get_settings

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


class ProspectRepository(Protocol):
    def create_search_run(self, tenant_id: str, actor_id: str, query_label: str, metadata: Dict[str, Any]) -> str:
        ...

    def upsert_candidates(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...

    def upsert_outreach(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


_INSERT_SEARCH_RUN = """
INSERT INTO search_runs (
    workspace_id,
    owner_id,
    query,
    filters,
    results_count
) VALUES (
    %(workspace_id)s,
    %(owner_id)s,
    %(query)s,
    %(filters)s,
    %(results_count)s
)
RETURNING id;
"""

_UPSERT_PROFILE = """
INSERT INTO profiles (
    instagram_handle,
    full_name,
    business_type,
    city,
    country,
    source_payload,
    updated_at
) VALUES (
    %(instagram_handle)s,
    %(full_name)s,
    %(business_type)s,
    %(city)s,
    %(country)s,
    %(source_payload)s,
    NOW()
)
ON CONFLICT (instagram_handle) DO UPDATE SET
    business_type = EXCLUDED.business_type,
    city = COALESCE(EXCLUDED.city, profiles.city),
    country = COALESCE(EXCLUDED.country, profiles.country),
    source_payload = EXCLUDED.source_payload,
    updated_at = NOW()
RETURNING id, instagram_handle;
"""

_UPSERT_LEAD = """
INSERT INTO leads (
    workspace_id,
    profile_id,
    owner_id,
    actor,
    status,
    source_query,
    confidence,
    generated_copy,
    copy_source,
    discovered_at,
    updated_at
) VALUES (
    %(workspace_id)s,
    %(profile_id)s,
    %(owner_id)s,
    %(actor)s,
    %(status)s,
    %(source_query)s,
    %(confidence)s,
    %(generated_copy)s,
    %(copy_source)s,
    %(discovered_at)s,
    NOW()
)
ON CONFLICT (workspace_id, profile_id) DO UPDATE SET
    owner_id = EXCLUDED.owner_id,
    actor = EXCLUDED.actor,
    source_query = EXCLUDED.source_query,
    confidence = EXCLUDED.confidence,
    generated_copy = EXCLUDED.generated_copy,
    copy_source = EXCLUDED.copy_source,
    updated_at = NOW()
RETURNING id, workspace_id, profile_id, owner_id, actor, status, source_query, confidence,
    generated_copy, copy_source, discovered_at;
"""


def _profile_params(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "instagram_handle": row.get("instagram_handle") or row.get("handle"),
        "full_name": row.get("full_name"),
        "business_type": row.get("business_type"),
        "city": row.get("city"),
        "country": row.get("country"),
        "source_payload": extras.Json(row.get("source_payload") or {}),
    }


def _lead_params(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "workspace_id": row.get("workspace_id"),
        "profile_id": row.get("profile_id"),
        "owner_id": row.get("owner_id"),
        "actor": row.get("actor"),
        "status": row.get("status") or "new",
        "source_query": row.get("source_query"),
        "confidence": row.get("confidence"),
        "generated_copy": row.get("generated_copy"),
        "copy_source": row.get("copy_source"),
        "discovered_at": row.get("discovered_at"),
    }


class PostgresRepository:
    """`ProspectRepository` on top of the pooled psycopg2 connection."""

    def create_search_run(self, tenant_id: str, actor_id: str, query_label: str, metadata: Dict[str, Any]) -> str:
        params = {
            "workspace_id": tenant_id,
            "owner_id": actor_id,
            "query": query_label,
            "filters": extras.Json(metadata),
            "results_count": metadata.get("resultsCount", 0),
        }
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(_INSERT_SEARCH_RUN, params)
                row = cur.fetchone()
            conn.commit()
        if not row:
            raise RuntimeError("Failed to create search run")
        logger.debug("Created search run %s", row[0])
        return str(row[0])

    def upsert_candidates(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        saved: List[Dict[str, Any]] = []
        for row in rows:
            if not (row.get("instagram_handle") or row.get("handle")):
                raise ValueError("instagram_handle is required for profile upsert")
        with get_connection() as conn:
            with conn.cursor() as cur:
                for row in rows:
                    cur.execute(_UPSERT_PROFILE, _profile_params(row))
                    profile_id, handle = cur.fetchone()
                    saved.append({"handle": handle, "id": str(profile_id)})
            conn.commit()
        logger.debug("Upserted %d profiles", len(saved))
        return saved

    def upsert_outreach(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        saved: List[Dict[str, Any]] = []
        for row in rows:
            if not row.get("workspace_id") or not row.get("profile_id"):
                raise ValueError("workspace_id and profile_id are required for lead upsert")
        with get_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                for row in rows:
                    cur.execute(_UPSERT_LEAD, _lead_params(row))
                    saved.append(dict(cur.fetchone()))
            conn.commit()
        logger.debug("Upserted %d leads", len(saved))
        return saved
