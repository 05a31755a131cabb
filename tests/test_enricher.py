import random
import threading
import time

import pytest

from insta_prospector.core.config import ConfigurationError
from insta_prospector.core.copywriter import generate_copy
from insta_prospector.core.enricher import (
    MAX_ERROR_CHARS,
    ConcurrentEnricher,
    EnrichmentContext,
    build_copy_prompt,
    normalize_punctuation,
)
from insta_prospector.models import Candidate, CopySource, ProfileType

CONTEXT = EnrichmentContext(actor_contact="ana.lopez@harbiz.io", profile_type=ProfileType.PT)


def _candidates(n):
    return [
        Candidate(handle=f"coach{i}", title=f"Coach {i}", snippet="Entrenador online", source_query="q")
        for i in range(n)
    ]


class RecordingOracle:
    """Echoes the handle back after a random delay and tracks concurrency."""

    def __init__(self, fail_for=(), delay=0.02):
        self.fail_for = set(fail_for)
        self.delay = delay
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def complete(self, messages, *, model=None, temperature=0.2, json_mode=False):
        prompt = messages[1]["content"]
        handle = next(line.split(": ", 1)[1] for line in prompt.splitlines() if line.startswith("Nombre/título"))
        with self._lock:
            self.calls.append(handle)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(random.uniform(0, self.delay))
            if handle in self.fail_for:
                raise RuntimeError("x" * 500)
            return f"¿Hola {handle}??"
        finally:
            with self._lock:
                self.active -= 1


def test_results_follow_input_order_and_each_item_runs_once():
    oracle = RecordingOracle()
    selected = _candidates(10)

    results = ConcurrentEnricher(oracle, workers=4).enrich(selected, CONTEXT)

    assert [r.handle for r in results] == [c.handle for c in selected]
    assert sorted(oracle.calls) == sorted(c.title for c in selected)
    assert len(oracle.calls) == 10
    assert oracle.max_active <= 4
    assert all(r.source is CopySource.ORACLE for r in results)
    assert results[3].copy == "Hola Coach 3?"


def test_failure_is_isolated_to_its_candidate():
    oracle = RecordingOracle(fail_for={"Coach 2"})
    selected = _candidates(5)

    results = ConcurrentEnricher(oracle, workers=4).enrich(selected, CONTEXT)

    failed = results[2]
    assert failed.source is CopySource.FALLBACK
    assert failed.error is not None and len(failed.error) <= MAX_ERROR_CHARS
    assert failed.copy == generate_copy(CONTEXT.actor_contact, display_name="Coach 2", bio="Entrenador online")
    assert [r.source for i, r in enumerate(results) if i != 2] == [CopySource.ORACLE] * 4


class ConstantOracle:
    def __init__(self, value):
        self.value = value

    def complete(self, messages, **kwargs):
        return self.value


@pytest.mark.parametrize("value", ["", "  ¿ ", None])
def test_empty_or_malformed_content_falls_back(value):
    results = ConcurrentEnricher(ConstantOracle(value)).enrich(_candidates(1), CONTEXT)
    assert results[0].source is CopySource.FALLBACK
    assert results[0].error


def test_without_oracle_uses_deterministic_copy():
    results = ConcurrentEnricher(None).enrich(_candidates(2), CONTEXT)
    assert [r.source for r in results] == [CopySource.FALLBACK, CopySource.FALLBACK]
    assert all(r.error is None for r in results)
    assert "WhatsApp/Drive" in results[0].copy


def test_configuration_error_propagates():
    class MissingKeyOracle:
        def complete(self, messages, **kwargs):
            raise ConfigurationError("OPENAI_API_KEY must be set")

    with pytest.raises(ConfigurationError):
        ConcurrentEnricher(MissingKeyOracle()).enrich(_candidates(3), CONTEXT)


def test_empty_selection():
    assert ConcurrentEnricher(ConstantOracle("x")).enrich([], CONTEXT) == []


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        ConcurrentEnricher(workers=0)


def test_normalize_punctuation():
    assert normalize_punctuation("  ¿Lo llevas por WhatsApp???  ") == "Lo llevas por WhatsApp?"


def test_copy_prompt_contents():
    candidate = Candidate(handle="fitbox", title="FitBox Polanco", snippet="Clases de HIIT", source_query="q")
    prompt = build_copy_prompt(candidate, EnrichmentContext("", ProfileType.CENTER))

    assert "Equipo Harbiz" in prompt
    assert "Fitness Center" in prompt
    assert "Le eché un vistazo a vuestro perfil" in prompt
    assert "Clases de HIIT" in prompt
    assert "máximo 3 líneas" in prompt
