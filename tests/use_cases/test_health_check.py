"""Tests for model health checks"""

from unittest.mock import MagicMock

from prompt_optimizer_core.domain.value_objects import ModelResponse
from prompt_optimizer_core.optimizer_config import ModelsConfig, OptimizerConfig
from prompt_optimizer_core.use_cases.health_check import (
    HEALTH_CHECK_PROMPT,
    health_check_model,
    required_models,
    run_health_check,
)


def _client_factory(outputs):
    """outputs: model name -> response text, or an exception to raise"""
    def create(model_name):
        client = MagicMock()
        output = outputs[model_name]
        if isinstance(output, Exception):
            client.generate.side_effect = output
        else:
            client.generate.return_value = ModelResponse(output=output, latency_ms=42, model_name=model_name)
        return client
    return create


class TestHealthCheckModel:
    def test_success(self):
        result = health_check_model("m", _client_factory({"m": "OK"}))

        assert result.success is True
        assert result.latency_ms == 42
        assert result.error is None

    def test_sends_health_check_prompt(self):
        client = MagicMock()
        client.generate.return_value = ModelResponse(output="OK", latency_ms=1, model_name="m")

        health_check_model("m", lambda name: client)

        client.generate.assert_called_once_with(HEALTH_CHECK_PROMPT)

    def test_empty_output_is_failure(self):
        result = health_check_model("m", _client_factory({"m": ""}))

        assert result.success is False
        assert "empty response" in result.error

    def test_exception_is_failure(self):
        result = health_check_model("m", _client_factory({"m": RuntimeError("auth failed")}))

        assert result.success is False
        assert result.latency_ms is None
        assert result.error == "auth failed"


class TestRequiredModels:
    def test_distinct_models(self):
        config = OptimizerConfig(models=ModelsConfig(
            prompt_generation_model="claude-sonnet-4-5-20250929",
            default_test_model="gemini-2.5-flash",
            judge_model="gemini-2.5-flash",
        ))

        assert required_models(config) == ["gemini-2.5-flash", "claude-sonnet-4-5-20250929"]

    def test_test_model_override(self):
        models = required_models(OptimizerConfig(), "lmstudio/qwen2.5-7b")
        assert models[0] == "lmstudio/qwen2.5-7b"


class TestRunHealthCheck:
    def test_available_models(self, capsys):
        available, results = run_health_check(
            ["good", "bad"],
            _client_factory({"good": "OK", "bad": RuntimeError("connection refused")}),
        )

        assert available == ["good"]
        assert [r.success for r in results] == [True, False]
        output = capsys.readouterr().out
        assert "OK (42ms)" in output
        assert "connection refused" in output

    def test_report_keeps_input_order(self, capsys):
        models = ["m1", "m2", "m3"]
        available, results = run_health_check(models, _client_factory({m: "OK" for m in models}), limit=3)

        assert available == models
        assert [r.model_name for r in results] == models
        output = capsys.readouterr().out
        assert output.index("m1...") < output.index("m2...") < output.index("m3...")

    def test_provider_hint_on_failure(self, capsys):
        run_health_check(
            ["claude-haiku-4-5-20251001"],
            _client_factory({"claude-haiku-4-5-20251001": ValueError("ANTHROPIC_API_KEY is not set")}),
        )

        assert "Hint: set ANTHROPIC_API_KEY" in capsys.readouterr().out
