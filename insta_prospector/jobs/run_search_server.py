"""HTTP entrypoint for Instagram prospecting runs."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from insta_prospector.core.config import ConfigurationError, get_settings
from insta_prospector.core.db import PostgresRepository
from insta_prospector.core.rate_limit import InMemoryRateLimitStore, RateLimiter, RateLimitExceeded
from insta_prospector.jobs.run_search import ProspectingPipeline, build_pipeline
from insta_prospector.models import ProfileType, clamp_count

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & shared state ----------
app = Flask(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_EMAIL_HEADER = "X-Actor-Email"

_rate_limiter: Optional[RateLimiter] = None
_pipeline: Optional[ProspectingPipeline] = None
_state_lock = threading.RLock()


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter shared by every request handled by this worker."""
    global _rate_limiter
    if _rate_limiter is None:
        with _state_lock:
            if _rate_limiter is None:
                settings = get_settings()
                _rate_limiter = RateLimiter(
                    InMemoryRateLimitStore(stale_after=settings.rate_limit_window_seconds),
                    max_requests=settings.rate_limit_max_requests,
                    window_seconds=settings.rate_limit_window_seconds,
                )
    return _rate_limiter


def get_pipeline() -> ProspectingPipeline:
    global _pipeline
    if _pipeline is None:
        with _state_lock:
            if _pipeline is None:
                settings = get_settings()
                repository = PostgresRepository() if settings.database_url else None
                _pipeline = build_pipeline(settings, rate_limiter=get_rate_limiter(), repository=repository)
    return _pipeline


# ---------- Routes ----------


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; only reads env-based settings."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": settings.worker_port,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/search-instagram")
def search_instagram() -> Any:
    """
    Run a prospecting search for the calling actor.
    Required JSON fields: keywords, profileType (PT | Center), location or country
    Optional: city, count (1-100, default 20), actor (sender e-mail)
    """
    actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
    if not actor_id:
        return jsonify({"error": "Unauthorized"}), 401

    # Admission is counted before validation, so malformed requests use quota too.
    try:
        get_rate_limiter().check(actor_id)
    except RateLimitExceeded as exc:
        return jsonify({"error": str(exc)}), 429

    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    keywords = str(payload.get("keywords") or "").strip()
    profile_type_raw = payload.get("profileType")
    if not keywords or not profile_type_raw:
        return jsonify({"error": "keywords and profileType are required"}), 400

    try:
        profile_type = ProfileType(profile_type_raw)
    except ValueError:
        return jsonify({"error": "profileType must be PT or Center"}), 400

    try:
        count = clamp_count(payload.get("count"))
    except (TypeError, ValueError):
        return jsonify({"error": "count must be numeric"}), 400

    actor_contact = str(payload.get("actor") or "").strip() or request.headers.get(ACTOR_EMAIL_HEADER, "")

    try:
        result = get_pipeline().run(
            actor_id=actor_id,
            actor_contact=actor_contact,
            keywords=keywords,
            profile_type=profile_type,
            location=payload.get("location"),
            city=payload.get("city"),
            country=payload.get("country"),
            count=count,
            check_rate_limit=False,
        )
    except RateLimitExceeded as exc:
        return jsonify({"error": str(exc)}), 429
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return jsonify({"error": str(exc)}), 500
    except Exception as exc:  # noqa: BLE001
        logger.exception("Search failed for actor=%s: %s", actor_id, exc)
        return jsonify({"error": str(exc) or "Search failed unexpectedly"}), 500

    return jsonify(result), 200


def main() -> None:
    port = int(os.getenv("PORT") or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
