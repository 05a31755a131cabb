"""Personalised outreach copy for selected candidates, generated in parallel."""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional

from insta_prospector.core.config import ConfigurationError
from insta_prospector.core.copywriter import BRAND_NAME, generate_copy, sdr_name_from_email
from insta_prospector.models import Candidate, CopyResult, CopySource, ProfileType
from insta_prospector.vendors.openai_client import OracleClient

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4
COPY_TEMPERATURE = 0.75
MAX_ERROR_CHARS = 160

COPY_SYSTEM_PROMPT = "Devuelve solo el mensaje final, sin explicación."

OPENING_PHRASES = {
    ProfileType.PT: "Le eché un vistazo a tu perfil",
    ProfileType.CENTER: "Le eché un vistazo a vuestro perfil",
}
CLOSING_QUESTIONS = {
    ProfileType.PT: "Hoy lo llevas más por WhatsApp/Excel o ya usas alguna app?",
    ProfileType.CENTER: "Las reservas las gestionáis por DM/WhatsApp o ya tenéis sistema?",
}

_REPEATED_QUESTION_MARKS = re.compile(r"\?{2,}")


@dataclass(frozen=True)
class EnrichmentContext:
    actor_contact: str
    profile_type: ProfileType


class EnrichmentError(RuntimeError):
    """Raised when the oracle returns nothing usable for one candidate."""


def normalize_punctuation(text: str) -> str:
    cleaned = text.replace("¿", "")
    cleaned = _REPEATED_QUESTION_MARKS.sub("?", cleaned)
    return cleaned.strip()


def build_copy_prompt(candidate: Candidate, context: EnrichmentContext) -> str:
    sdr_name = sdr_name_from_email(context.actor_contact)
    profile_type = context.profile_type
    return "\n".join(
        [
            f"Escribe un DM corto de Instagram de parte de {sdr_name} ({BRAND_NAME}) para este perfil.",
            f"Tipo de perfil: {profile_type.business_type}",
            f"Nombre/título: {candidate.title}",
            f"Bio/snippet: {candidate.snippet}",
            "",
            "Estructura:",
            f'1. Saludo con el nombre de {sdr_name} y una frase que contenga exactamente "{OPENING_PHRASES[profile_type]}"'
            " con un detalle concreto del perfil.",
            f"2. Una línea breve de cómo {BRAND_NAME} les ayuda.",
            f'3. Cierra con la pregunta: "{CLOSING_QUESTIONS[profile_type]}"',
            "",
            "Reglas: texto plano, máximo 3 líneas, sin emojis, sin signos de interrogación de apertura (¿).",
        ]
    )


class ConcurrentEnricher:
    """Runs copy generation over a fixed pool of workers sharing an index cursor.

    Each worker claims the next unprocessed index and writes only that slot of
    the result list, so results keep the order of `selected`.
    """

    def __init__(
        self,
        oracle: Optional[OracleClient] = None,
        workers: int = DEFAULT_WORKERS,
        model: Optional[str] = None,
        temperature: float = COPY_TEMPERATURE,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.oracle = oracle
        self.workers = workers
        self.model = model
        self.temperature = temperature

    def enrich(self, selected: List[Candidate], context: EnrichmentContext) -> List[CopyResult]:
        total = len(selected)
        if total == 0:
            return []

        results: List[Optional[CopyResult]] = [None] * total
        cursor = 0
        cursor_lock = threading.Lock()

        def claim() -> Optional[int]:
            nonlocal cursor
            with cursor_lock:
                if cursor >= total:
                    return None
                index = cursor
                cursor += 1
                return index

        def worker() -> None:
            while True:
                index = claim()
                if index is None:
                    return
                results[index] = self._generate(selected[index], context)

        pool_size = min(self.workers, total)
        with ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="enrich") as executor:
            futures = [executor.submit(worker) for _ in range(pool_size)]
            for future in futures:
                future.result()

        logger.info(
            "Generated copy for %d candidates (%d via oracle)",
            total,
            sum(1 for result in results if result is not None and result.source is CopySource.ORACLE),
        )
        return [result for result in results if result is not None]

    def _fallback(self, candidate: Candidate, context: EnrichmentContext, error: Optional[str]) -> CopyResult:
        copy = generate_copy(context.actor_contact, display_name=candidate.title, bio=candidate.snippet)
        return CopyResult(handle=candidate.handle, copy=copy, source=CopySource.FALLBACK, error=error)

    def _generate(self, candidate: Candidate, context: EnrichmentContext) -> CopyResult:
        if self.oracle is None:
            return self._fallback(candidate, context, None)

        messages: List[Dict[str, str]] = [
            {"role": "system", "content": COPY_SYSTEM_PROMPT},
            {"role": "user", "content": build_copy_prompt(candidate, context)},
        ]
        try:
            content = self.oracle.complete(messages, model=self.model, temperature=self.temperature)
            if not isinstance(content, str):
                raise EnrichmentError(f"oracle returned {type(content).__name__} instead of text")
            copy = normalize_punctuation(content)
            if not copy:
                raise EnrichmentError("oracle returned an empty message")
        except ConfigurationError:
            raise
        except Exception as exc:  # noqa: BLE001
            error = f"{type(exc).__name__}: {exc}"[:MAX_ERROR_CHARS]
            logger.warning("Copy generation failed for @%s, using fallback: %s", candidate.handle, error)
            return self._fallback(candidate, context, error)

        return CopyResult(handle=candidate.handle, copy=copy, source=CopySource.ORACLE)
