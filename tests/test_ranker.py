import json

import pytest

from insta_prospector.core.config import ConfigurationError
from insta_prospector.core.ranker import CandidateRanker, SelectionParseError, build_ranking_messages, parse_selection
from insta_prospector.models import Candidate, ProfileType, SearchRequest


class StubOracle:
    def __init__(self, content=None, exc=None):
        self.content = content
        self.exc = exc
        self.calls = []

    def complete(self, messages, *, model=None, temperature=0.2, json_mode=False):
        self.calls.append({"messages": messages, "temperature": temperature, "json_mode": json_mode})
        if self.exc is not None:
            raise self.exc
        return self.content


def _candidates(*handles):
    return [Candidate(handle=h, title=f"{h} title", snippet="bio", source_query="q") for h in handles]


def _request(count=2):
    return SearchRequest(location="CDMX, Mexico", keywords="fuerza", profile_type=ProfileType.PT, count=count)


def test_empty_candidates_skip_oracle():
    oracle = StubOracle(content="{}")
    assert CandidateRanker(oracle).rank(_request(), []) == []
    assert oracle.calls == []


def test_oracle_order_and_truncation():
    candidates = _candidates("a", "b", "c")
    oracle = StubOracle(json.dumps({"selected": [{"handle": "C"}, {"handle": "ghost"}, {"handle": "a"}, {"handle": "b"}]}))

    ranked = CandidateRanker(oracle).rank(_request(count=2), candidates)

    assert [c.handle for c in ranked] == ["c", "a"]
    assert oracle.calls[0]["json_mode"] is True


def test_oracle_exception_falls_back_to_registry_order():
    candidates = _candidates("a", "b", "c")
    ranked = CandidateRanker(StubOracle(exc=RuntimeError("unreachable"))).rank(_request(count=2), candidates)
    assert ranked == candidates[:2]


@pytest.mark.parametrize("content", ["", "   ", "not json", "[]", '{"other": 1}', '{"selected": [{"name": "a"}]}'])
def test_unusable_content_falls_back(content):
    candidates = _candidates("a", "b", "c")
    assert CandidateRanker(StubOracle(content)).rank(_request(count=5), candidates) == candidates


def test_well_formed_empty_selection_returns_nothing():
    candidates = _candidates("a", "b")
    assert CandidateRanker(StubOracle('{"selected": []}')).rank(_request(), candidates) == []


def test_configuration_error_propagates():
    with pytest.raises(ConfigurationError):
        CandidateRanker(StubOracle(exc=ConfigurationError("OPENAI_API_KEY"))).rank(_request(), _candidates("a"))


def test_parse_selection_kinds():
    with pytest.raises(SelectionParseError) as empty:
        parse_selection(None)
    assert empty.value.kind == "empty"

    with pytest.raises(SelectionParseError) as malformed:
        parse_selection("{")
    assert malformed.value.kind == "malformed"

    assert parse_selection('{"selected": [{"handle": " @Coach.Ana "}]}') == ["coach.ana"]


def test_prompt_never_includes_score():
    candidates = [Candidate(handle="a", title="t", snippet="s", source_query="q", score=7.0)]
    messages = build_ranking_messages(_request(count=3), candidates)

    assert "Máximo 3" in messages[0]["content"]
    payload = json.loads(messages[1]["content"])
    assert payload["topK"] == 3
    assert payload["profileType"] == "PT"
    assert payload["candidates"] == [{"handle": "a", "title": "t", "snippet": "s", "sourceQuery": "q"}]
