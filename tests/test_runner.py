"""
Integration test for the CLI pipeline (using mocks for model clients).

Verifies the full optimization pipeline works end-to-end:
1. Load an accuracy snapshot
2. Optimize the failing field (mocked model clients)
3. Write the summary files
4. Apply the improved prompt to the prompt history
"""

import json

import pandas as pd
import pytest

from prompt_optimizer_core import runner
from prompt_optimizer_core.domain.value_objects import ModelResponse

MODEL = "gemini-2.5-flash"
BETTER_PROMPT = (
    'Search the invoice header and the "From:" or "Remit To:" block for the company SENDING the invoice. '
    'Return the full legal name with suffixes such as Inc or LLC. Return "Not Present" if absent.'
)
DOCUMENTS = {"d1": "Invoice from Acme Inc", "d2": "Invoice from Beta LLC"}

SNAPSHOT = {
    "template_key": "invoices",
    "fields": [{"key": "vendor", "name": "Vendor Name", "prompt": "Extract the vendor"}],
    "documents": [
        {
            "id": "d1",
            "name": "one.pdf",
            "values": {"vendor": {"Ground Truth": "Acme Inc", MODEL: "Wrong Co"}},
            "comparisons": {"vendor": {MODEL: {"is_match": False, "match_type": "near-exact-string"}}},
        },
        {
            "id": "d2",
            "name": "two.pdf",
            "values": {"vendor": {"Ground Truth": "Beta LLC", MODEL: "Beta LLC"}},
            "comparisons": {"vendor": {MODEL: {"is_match": True, "match_type": "near-exact-string"}}},
        },
    ],
}


class FakeClient:
    """Answers health checks, synthesis requests, and extraction prompts"""

    def __init__(self, model_name):
        self.model_name = model_name

    def _answer(self, prompt):
        if "RESPOND WITH VALID JSON ONLY" in prompt:
            return json.dumps({"newPrompt": BETTER_PROMPT, "reasoning": "Points at the sender block"})
        if "FIELDS:" in prompt:
            if BETTER_PROMPT in prompt or DOCUMENTS["d2"] in prompt:
                value = "Acme Inc" if DOCUMENTS["d1"] in prompt else "Beta LLC"
            else:
                value = "Wrong Co"
            return json.dumps({"vendor": value})
        return "OK"

    def generate(self, prompt):
        return ModelResponse(output=self._answer(prompt), latency_ms=5, model_name=self.model_name)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    for key in ("OPTIMIZER_MAX_DOCS", "OPTIMIZER_MAX_ITERATIONS", "OPTIMIZER_TEST_MODEL", "OPTIMIZER_HOLDOUT_RATIO"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(runner, "create_client", lambda model, config: FakeClient(model))

    docs_dir = tmp_path / "documents"
    docs_dir.mkdir()
    for doc_id, text in DOCUMENTS.items():
        (docs_dir / f"{doc_id}.txt").write_text(text, encoding="utf-8")
    snapshot_path = tmp_path / "snapshot.json"
    snapshot_path.write_text(json.dumps(SNAPSHOT), encoding="utf-8")
    return tmp_path


def _args(workspace, *extra):
    return [
        "--snapshot", str(workspace / "snapshot.json"),
        "--documents-dir", str(workspace / "documents"),
        "--history-file", str(workspace / "history.json"),
        "--output-dir", str(workspace / "results"),
        "--test-model", MODEL,
        *extra,
    ]


class TestLoadSnapshot:
    def test_load_snapshot(self, workspace):
        snapshot = runner.load_snapshot(workspace / "snapshot.json")

        assert snapshot.template_key == "invoices"
        assert [d.id for d in snapshot.documents] == ["d1", "d2"]


class TestMain:
    def test_end_to_end_with_apply(self, workspace, capsys):
        runner.main(_args(workspace, "--apply"))

        output = capsys.readouterr().out
        assert "Model Health Check" in output
        assert "Vendor Name" in output
        assert "converged" in output

        csv_files = list((workspace / "results").glob("summary_*.csv"))
        json_files = list((workspace / "results").glob("run_*.json"))
        assert len(csv_files) == 1
        assert len(json_files) == 1

        df = pd.read_csv(csv_files[0])
        assert list(df["field_key"]) == ["vendor"]
        assert bool(df["improved"].iloc[0]) is True

        details = json.loads(json_files[0].read_text(encoding="utf-8"))
        assert details["results"][0]["status"] == "converged"

        history = json.loads((workspace / "history.json").read_text(encoding="utf-8"))
        assert history["invoices"]["vendor"]["active"] == BETTER_PROMPT

    def test_without_apply_leaves_history_untouched(self, workspace):
        runner.main(_args(workspace, "--skip-health-check"))

        assert not (workspace / "history.json").exists()

    def test_unavailable_model_exits(self, workspace, monkeypatch):
        def failing_client(model, config):
            raise RuntimeError("no credentials")

        monkeypatch.setattr(runner, "create_client", failing_client)

        with pytest.raises(SystemExit) as exc_info:
            runner.main(_args(workspace))
        assert exc_info.value.code == 1

    def test_snapshot_without_comparisons_exits(self, workspace):
        (workspace / "snapshot.json").write_text(
            json.dumps({"template_key": "invoices", "fields": [], "documents": []}), encoding="utf-8",
        )

        with pytest.raises(SystemExit) as exc_info:
            runner.main(_args(workspace, "--skip-health-check"))
        assert exc_info.value.code == 1
