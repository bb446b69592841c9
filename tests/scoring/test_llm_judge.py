"""
LLMJudge のテスト

判定レスポンスのパース、プレースホルダーのキャッシュ、
not found 時の1回だけのリトライ動作をテストする。
"""

import threading
import time

import pytest
from unittest.mock import MagicMock

from prompt_optimizer_core.domain.value_objects import CompareType, Confidence
from prompt_optimizer_core.errors import ContextNotFoundError
from prompt_optimizer_core.infrastructure.adapters import InMemoryDocumentStore, InMemoryPlaceholderProvider
from prompt_optimizer_core.scoring.llm_judge import (
    DEFAULT_CRITERIA,
    LLMJudge,
    PlaceholderContextCache,
    build_judge_prompt,
    is_context_not_found,
    parse_judge_response,
)


# ---------------------------------------------------------------------------
# テスト用の生成サービス
# ---------------------------------------------------------------------------

class FakeGenerationService:
    """responses を順番に返す。例外インスタンスはraiseする"""

    def __init__(self, responses):
        self._responses = list(responses)
        self.calls: list[tuple[str, list[str], str]] = []

    def generate(self, prompt, items, model):
        self.calls.append((prompt, list(items), model))
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _make_judge(responses):
    provider = InMemoryPlaceholderProvider(InMemoryDocumentStore())
    service = FakeGenerationService(responses)
    judge = LLMJudge(service, PlaceholderContextCache(provider), model="judge-model")
    return judge, service, provider


# ===========================================================================
# parse_judge_response
# ===========================================================================


class TestParseJudgeResponse:
    """parse_judge_response のテスト"""

    def test_match_with_reason(self):
        verdict = parse_judge_response("MATCH\nReason: Same company")
        assert verdict.is_match is True
        assert verdict.reason == "Same company"

    def test_no_match_underscore(self):
        verdict = parse_judge_response("NO_MATCH\nReason: Different dates")
        assert verdict.is_match is False
        assert verdict.reason == "Different dates"

    def test_no_match_with_space(self):
        """NO MATCH は MATCH より先に判定される"""
        assert parse_judge_response("NO MATCH\nReason: x").is_match is False

    def test_second_line_used_as_reason(self):
        verdict = parse_judge_response("match\nBoth refer to Delaware")
        assert verdict.is_match is True
        assert verdict.reason == "Both refer to Delaware"

    def test_missing_reason(self):
        assert parse_judge_response("MATCH").reason == "No reason provided"

    @pytest.mark.parametrize("raw", [None, "", "   \n  "])
    def test_empty_response(self, raw):
        verdict = parse_judge_response(raw)
        assert verdict.is_match is False
        assert verdict.reason == "Empty response"

    def test_ambiguous_response(self):
        verdict = parse_judge_response("I am not sure about this one")
        assert verdict.is_match is False
        assert verdict.reason.startswith("Ambiguous response")


class TestBuildJudgePrompt:
    """build_judge_prompt のテスト"""

    def test_contains_values_and_default_criteria(self):
        prompt = build_judge_prompt("Delaware", "State of Delaware")
        assert 'Ground Truth: "Delaware"' in prompt
        assert 'Extracted Value: "State of Delaware"' in prompt
        assert DEFAULT_CRITERIA in prompt

    def test_custom_criteria(self):
        prompt = build_judge_prompt("a", "b", criteria="Same legal entity")
        assert "Criteria: Same legal entity" in prompt


class TestIsContextNotFound:
    """is_context_not_found のテスト"""

    def test_typed_error(self):
        assert is_context_not_found(ContextNotFoundError("gone"))

    def test_message_patterns(self):
        assert is_context_not_found(RuntimeError("Item abc not found"))
        assert is_context_not_found(RuntimeError("HTTP 404"))
        assert not is_context_not_found(RuntimeError("rate limited"))


# ===========================================================================
# PlaceholderContextCache
# ===========================================================================


class TestPlaceholderContextCache:
    """PlaceholderContextCache のテスト"""

    def test_created_lazily_once(self):
        provider = MagicMock()
        provider.create_placeholder.return_value = "ph-1"
        cache = PlaceholderContextCache(provider)

        provider.create_placeholder.assert_not_called()
        assert cache.get() == "ph-1"
        assert cache.get() == "ph-1"
        provider.create_placeholder.assert_called_once()

    def test_concurrent_callers_share_one_creation(self):
        """同時に呼ばれてもプレースホルダーは1つだけ作成される"""
        provider = MagicMock()

        def slow_create():
            time.sleep(0.05)
            return "ph-1"

        provider.create_placeholder.side_effect = slow_create
        cache = PlaceholderContextCache(provider)
        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get())) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == ["ph-1"] * 8
        provider.create_placeholder.assert_called_once()

    def test_invalidate_recreates(self):
        provider = MagicMock()
        provider.create_placeholder.side_effect = ["ph-1", "ph-2"]
        cache = PlaceholderContextCache(provider)

        cache.get()
        cache.invalidate("ph-1")

        assert cache.get() == "ph-2"

    def test_invalidate_ignores_stale_id(self):
        """既に置き換え済みの場合、古いIDでの無効化は無視される"""
        provider = MagicMock()
        provider.create_placeholder.side_effect = ["ph-1", "ph-2"]
        cache = PlaceholderContextCache(provider)

        cache.get()
        cache.invalidate("ph-1")
        cache.get()
        cache.invalidate("ph-1")

        assert cache.get() == "ph-2"
        assert provider.create_placeholder.call_count == 2


# ===========================================================================
# LLMJudge
# ===========================================================================


class TestLLMJudge:
    """LLMJudge のテスト"""

    def test_match_outcome(self):
        judge, service, provider = _make_judge(["MATCH\nReason: Same"])

        outcome = judge.compare("Delaware", "State of Delaware")

        assert outcome.is_match is True
        assert outcome.match_type == CompareType.LLM_JUDGE
        assert outcome.confidence == Confidence.MEDIUM
        assert outcome.details == "Same"
        assert service.calls[0][2] == "judge-model"
        assert provider.created_count == 1

    def test_placeholder_shared_across_calls(self):
        judge, service, provider = _make_judge(["MATCH", "NO_MATCH"])

        judge.compare("a", "b")
        judge.compare("c", "d")

        assert provider.created_count == 1
        assert service.calls[0][1] == service.calls[1][1]

    def test_retry_once_on_not_found(self):
        """not found の場合、プレースホルダーを作り直して1回だけリトライする"""
        judge, service, provider = _make_judge([ContextNotFoundError("Item not found"), "MATCH"])

        outcome = judge.compare("a", "b")

        assert outcome.is_match is True
        assert len(service.calls) == 2
        assert provider.created_count == 2
        assert service.calls[0][1] != service.calls[1][1]

    def test_second_not_found_is_an_error(self):
        judge, service, _ = _make_judge([ContextNotFoundError("not found"), ContextNotFoundError("not found")])

        outcome = judge.compare("a", "b")

        assert outcome.is_match is False
        assert outcome.error is not None
        assert len(service.calls) == 2

    def test_other_errors_are_not_retried(self):
        judge, service, provider = _make_judge([RuntimeError("quota exceeded")])

        outcome = judge.compare("a", "b")

        assert outcome.is_match is False
        assert outcome.confidence == Confidence.LOW
        assert outcome.error == "quota exceeded"
        assert len(service.calls) == 1
        assert provider.created_count == 1

    def test_judge_raises_upstream_errors(self):
        judge, _, _ = _make_judge([RuntimeError("quota exceeded")])

        with pytest.raises(RuntimeError, match="quota exceeded"):
            judge.judge("a", "b")
